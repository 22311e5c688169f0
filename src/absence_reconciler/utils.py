"""Shared helpers: hashing, timestamps, date options."""

from __future__ import annotations

import hashlib
from datetime import date, datetime, timezone
from pathlib import Path


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of *path*."""
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def utcnow_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def parse_today(raw: str | None) -> date:
    """Parse a ``YYYY-MM-DD`` override for "today"; ``None`` means the local date."""
    if raw is None or not raw.strip():
        return date.today()
    try:
        return datetime.strptime(raw.strip(), "%Y-%m-%d").date()
    except ValueError as exc:
        raise ValueError(f"Invalid --today value {raw!r} (expected YYYY-MM-DD)") from exc
