"""Helpers for order-independent value comparison."""

from __future__ import annotations

import json
from typing import Any, Iterable


def canonical_json(value: Any) -> str:
    """Order-independent text form of a JSON-like value, used as an equality key."""
    return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)


def unique_values(values: Iterable[Any]) -> list[Any]:
    seen: set[str] = set()
    out: list[Any] = []
    for value in values:
        key = canonical_json(value)
        if key in seen:
            continue
        seen.add(key)
        out.append(value)
    return out
