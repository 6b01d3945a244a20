"""Utilities for converting domain dataclasses to plain JSON-safe values."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any


def to_json_safe(obj: Any) -> Any:
    """Recursively convert dataclasses, enums, dates and tuples to JSON primitives.

    The result shares no mutable structure with ``obj``, so it can be kept
    as an independent snapshot even if the source is later replaced.
    """
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime | date):
        return obj.isoformat()
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_json_safe(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, Mapping):
        return {str(k): to_json_safe(v) for k, v in obj.items()}
    if isinstance(obj, list | tuple | set | frozenset):
        return [to_json_safe(item) for item in obj]
    if isinstance(obj, float):
        return round(obj, 2)
    return obj

