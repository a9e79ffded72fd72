from __future__ import annotations

import json
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, List

import pytest

from app.models.sources import Source
from services import source_registry
from services.seed_errors import NoSourcesAvailable, UpsertFailure
from services.source_registry import filter_sources, resolve_sources, upsert_sources


def _source(source_id: str, **kwargs: Any) -> Source:
    return Source(id=source_id, name=source_id.upper(), api_endpoint=f"https://{source_id}.example", **kwargs)


def _bootstrap_file(tmp_path: Path, entries: List[dict]) -> Path:
    path = tmp_path / "sources.json"
    path.write_text(json.dumps(entries), encoding="utf-8")
    return path


def _fake_transaction(rows: List[Any], seen: List[tuple]):
    @asynccontextmanager
    async def fake_run_in_transaction():
        yield object()

    async def fake_fetchrow_with_conn(conn, query, *args):
        seen.append(args)
        return rows.pop(0)

    return fake_run_in_transaction, fake_fetchrow_with_conn


@pytest.mark.asyncio
async def test_upsert_sources_counts_outcomes(monkeypatch):
    seen: List[tuple] = []
    tx, fetchrow_with_conn = _fake_transaction(
        [{"inserted": True}, None, {"inserted": False}], seen
    )
    monkeypatch.setattr(source_registry, "run_in_transaction", tx)
    monkeypatch.setattr(source_registry, "fetchrow_with_conn", fetchrow_with_conn)

    counts = await upsert_sources([_source("new"), _source("same"), _source("changed")])

    assert counts == {"matched": 2, "upserted": 1, "modified": 1}
    assert [args[0] for args in seen] == ["new", "same", "changed"]


@pytest.mark.asyncio
async def test_upsert_sources_collapses_duplicate_ids(monkeypatch):
    seen: List[tuple] = []
    tx, fetchrow_with_conn = _fake_transaction([{"inserted": True}], seen)
    monkeypatch.setattr(source_registry, "run_in_transaction", tx)
    monkeypatch.setattr(source_registry, "fetchrow_with_conn", fetchrow_with_conn)

    await upsert_sources([_source("dup", description="first"), _source("dup", description="last")])

    assert len(seen) == 1
    assert seen[0][3] == "last"


@pytest.mark.asyncio
async def test_upsert_sources_empty_batch_skips_store(monkeypatch):
    @asynccontextmanager
    async def boom():
        raise AssertionError("store must not be touched")
        yield  # pragma: no cover

    monkeypatch.setattr(source_registry, "run_in_transaction", boom)
    assert await upsert_sources([]) == {"matched": 0, "upserted": 0, "modified": 0}


@pytest.mark.asyncio
async def test_upsert_sources_wraps_store_errors(monkeypatch):
    @asynccontextmanager
    async def fake_tx():
        yield object()

    async def failing_fetchrow(conn, query, *args):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(source_registry, "run_in_transaction", fake_tx)
    monkeypatch.setattr(source_registry, "fetchrow_with_conn", failing_fetchrow)

    with pytest.raises(UpsertFailure):
        await upsert_sources([_source("x")])


@pytest.mark.asyncio
async def test_upsert_params_keep_absent_fields_null(monkeypatch):
    seen: List[tuple] = []
    tx, fetchrow_with_conn = _fake_transaction([{"inserted": True}], seen)
    monkeypatch.setattr(source_registry, "run_in_transaction", tx)
    monkeypatch.setattr(source_registry, "fetchrow_with_conn", fetchrow_with_conn)

    await upsert_sources([_source("sparse")])

    _, _, _, description, active, rate, timeout, tags, headers, last_fetched = seen[0]
    assert (description, active, rate, timeout, tags, headers, last_fetched) == (
        None, None, None, None, None, None, None,
    )


@pytest.mark.asyncio
async def test_resolve_prefers_store_sources(monkeypatch, tmp_path):
    async def fake_list_active():
        return [_source("db")]

    monkeypatch.setattr(source_registry, "list_active_sources", fake_list_active)

    resolution = await resolve_sources(
        sources_file=tmp_path / "missing.json", bootstrap=True, dry_run=False
    )
    assert [s.id for s in resolution.sources] == ["db"]
    assert resolution.bootstrapped is False


@pytest.mark.asyncio
async def test_resolve_falls_back_to_file_without_bootstrap(monkeypatch, tmp_path):
    async def fake_list_active():
        return []

    async def fail_upsert(sources):
        raise AssertionError("bootstrap flag is off")

    monkeypatch.setattr(source_registry, "list_active_sources", fake_list_active)
    monkeypatch.setattr(source_registry, "upsert_sources", fail_upsert)
    path = _bootstrap_file(
        tmp_path,
        [
            {"id": "on", "name": "On", "apiEndpoint": "https://on"},
            {"id": "off", "name": "Off", "apiEndpoint": "https://off", "active": False},
        ],
    )

    resolution = await resolve_sources(sources_file=path, bootstrap=False, dry_run=False)
    assert [s.id for s in resolution.sources] == ["on"]


@pytest.mark.asyncio
async def test_resolve_bootstraps_and_requeries(monkeypatch, tmp_path):
    calls = {"list": 0, "upsert": []}

    async def fake_list_active():
        calls["list"] += 1
        return [] if calls["list"] == 1 else [_source("json-source")]

    async def fake_upsert(sources):
        calls["upsert"].append([s.id for s in sources])
        return {"matched": 0, "upserted": 1, "modified": 0}

    monkeypatch.setattr(source_registry, "list_active_sources", fake_list_active)
    monkeypatch.setattr(source_registry, "upsert_sources", fake_upsert)
    path = _bootstrap_file(
        tmp_path,
        [{"id": "json-source", "name": "JSON Source", "api_endpoint": "https://example.com/json"}],
    )

    resolution = await resolve_sources(sources_file=path, bootstrap=True, dry_run=False)

    assert calls["upsert"] == [["json-source"]]
    assert calls["list"] == 2
    assert resolution.bootstrapped is True
    assert resolution.bootstrap_counts == {"matched": 0, "upserted": 1, "modified": 0}


@pytest.mark.asyncio
async def test_resolve_bootstrap_failure_keeps_file_sources(monkeypatch, tmp_path):
    async def fake_list_active():
        return []

    async def failing_upsert(sources):
        raise UpsertFailure("db down")

    monkeypatch.setattr(source_registry, "list_active_sources", fake_list_active)
    monkeypatch.setattr(source_registry, "upsert_sources", failing_upsert)
    path = _bootstrap_file(tmp_path, [{"id": "f", "name": "F", "apiEndpoint": "https://f"}])

    resolution = await resolve_sources(sources_file=path, bootstrap=True, dry_run=True)
    assert [s.id for s in resolution.sources] == ["f"]
    assert resolution.bootstrapped is False


@pytest.mark.asyncio
async def test_resolve_without_store_reads_file_only(monkeypatch, tmp_path):
    async def fail(*args, **kwargs):
        raise AssertionError("store must not be touched")

    monkeypatch.setattr(source_registry, "list_active_sources", fail)
    monkeypatch.setattr(source_registry, "upsert_sources", fail)
    path = _bootstrap_file(tmp_path, [{"id": "f", "name": "F", "apiEndpoint": "https://f"}])

    resolution = await resolve_sources(
        sources_file=path, bootstrap=True, dry_run=True, store_available=False
    )
    assert [s.id for s in resolution.sources] == ["f"]
    assert resolution.bootstrapped is False


@pytest.mark.asyncio
async def test_mark_source_fetched_updates_timestamp_only(monkeypatch):
    recorded: List[tuple] = []

    async def fake_execute(query, *args):
        recorded.append((query, args))
        return "UPDATE 1"

    monkeypatch.setattr(source_registry, "execute", fake_execute)
    from datetime import datetime, timezone

    at = datetime(2024, 1, 1, tzinfo=timezone.utc)
    await source_registry.mark_source_fetched("src", at)

    query, args = recorded[0]
    assert "UPDATE sources" in query
    assert "INSERT" not in query
    assert args == ("src", at)


def test_filter_sources_by_id():
    sources = [_source("a"), _source("b")]
    assert [s.id for s in filter_sources(sources, "b")] == ["b"]
    assert [s.id for s in filter_sources(sources, None)] == ["a", "b"]


def test_filter_sources_raises_when_empty():
    with pytest.raises(NoSourcesAvailable):
        filter_sources([_source("a")], "zzz")
    with pytest.raises(NoSourcesAvailable):
        filter_sources([], None)
