"""Run, organisation, conflict and audit identifier helpers."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone

from orgs_aggregator.common.constants import ID_SLUG_MAX_LENGTH


def generate_run_id() -> str:
    now = datetime.now(tz=timezone.utc)
    return now.strftime("run-%Y%m%dT%H%M%S%fZ")


def short_digest(*parts: str, length: int = 8) -> str:
    digest = hashlib.sha1("\x1f".join(parts).encode("utf-8")).hexdigest()
    return digest[:length]


def slugify_key(key: str) -> str:
    """Turn a normalised name key into an id-safe slug of bounded length."""
    slug = "-".join(key.split())
    if len(slug) <= ID_SLUG_MAX_LENGTH:
        return slug
    head = slug[:ID_SLUG_MAX_LENGTH].rstrip("-")
    return f"{head}-{short_digest(key)}"


def conflict_id(organisation_id: str, field: str) -> str:
    return f"conflict-{organisation_id}-{field}"


def audit_id(sequence: int) -> str:
    return f"audit-{sequence:06d}"
