"""Shared helpers — digests, timestamps, output names."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone
from pathlib import Path

_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


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


def safe_filename_part(text: str, default: str = "report") -> str:
    """``"March 2025"`` → ``"March-2025"``; empty input gives *default*."""
    cleaned = _UNSAFE_NAME_RE.sub("-", text.strip()).strip("-.")
    return cleaned or default
