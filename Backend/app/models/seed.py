from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, Iterable, List, Literal, Optional

ItemOutcome = Literal["inserted", "updated", "skipped", "simulated"]

DEFAULT_CONCURRENCY = 3


@dataclass(frozen=True)
class SeedOptions:
    """
    Options for one seed run.

    dry_run            fetch, but never write to the store
    source_id          narrow the run to a single source id
    concurrency        max sources processed at the same time
    bootstrap_sources  upsert ``sources.json`` into the store when it is empty
    """

    dry_run: bool = False
    source_id: Optional[str] = None
    concurrency: int = DEFAULT_CONCURRENCY
    bootstrap_sources: bool = False

    def merged(self, **overrides: Any) -> "SeedOptions":
        """Copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if "concurrency" in changes and int(changes["concurrency"]) < 1:
            changes.pop("concurrency")
        return replace(self, **changes)


@dataclass
class SeedMetrics:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    simulated: int = 0
    failed: int = 0
    fetched: int = 0

    def record(self, outcome: ItemOutcome) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)

    def add(self, other: "SeedMetrics") -> None:
        self.inserted += other.inserted
        self.updated += other.updated
        self.skipped += other.skipped
        self.simulated += other.simulated
        self.failed += other.failed
        self.fetched += other.fetched

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class SourceResult:
    source_id: str
    source_name: str
    duration_ms: int
    metrics: SeedMetrics
    http_status: Optional[int] = None
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "sourceId": self.source_id,
            "sourceName": self.source_name,
            "httpStatus": self.http_status,
            "durationMs": self.duration_ms,
            "metrics": self.metrics.as_dict(),
            "error": self.error,
        }


@dataclass
class SeedSummary:
    results: List[SourceResult] = field(default_factory=list)
    totals: SeedMetrics = field(default_factory=SeedMetrics)

    @classmethod
    def from_results(cls, results: Iterable[SourceResult]) -> "SeedSummary":
        collected = list(results)
        totals = SeedMetrics()
        for result in collected:
            totals.add(result.metrics)
        return cls(results=collected, totals=totals)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.as_dict() for r in self.results],
            "totals": self.totals.as_dict(),
        }
