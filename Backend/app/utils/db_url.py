from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from services.seed_errors import ConfigurationError

_ASYNCPG_SCHEMES = ("postgres://", "postgresql+asyncpg://", "postgresql+psycopg2://")


def normalize_database_url(raw: str) -> str:
    """
    Rewrite SQLAlchemy-style schemes to the plain postgresql:// form asyncpg
    accepts. Credentials, host, port and database are kept exactly.
    """
    s = (raw or "").strip().strip('"').strip("'")
    if not s:
        raise ConfigurationError("DATABASE_URL is empty")

    for prefix in _ASYNCPG_SCHEMES:
        if s.startswith(prefix):
            s = "postgresql://" + s[len(prefix):]
            break

    p = urlsplit(s)
    if p.scheme != "postgresql":
        raise ConfigurationError(f"unsupported DATABASE_URL scheme: {p.scheme or '<none>'}")

    # asyncpg understands sslmode natively, but not the SQLAlchemy ssl=true flag
    q = dict(parse_qsl(p.query, keep_blank_values=True))
    if q.pop("ssl", None) in {"true", "1"}:
        q.setdefault("sslmode", "require")

    return urlunsplit((p.scheme, p.netloc, p.path, urlencode(q, doseq=True), p.fragment))


def describe_dsn(url: str) -> dict:
    """Host/port/db triple safe to log."""
    p = urlsplit(url)
    return {"dsn_host": p.hostname, "dsn_port": p.port, "dsn_db": p.path.lstrip("/") or None}
