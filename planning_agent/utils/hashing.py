"""Shared hashing helpers for suggestion deduplication and audit correlation."""

from __future__ import annotations

import json
from hashlib import sha256
from typing import Any


def stable_hash(payload: Any) -> str:
    """Create a stable hash for a JSON-serializable payload."""
    return sha256(json.dumps(payload, sort_keys=True, default=str).encode("utf-8")).hexdigest()


def hash_suggestion_payload(kind: str, target: dict[str, Any]) -> str:
    """Hash the kind and proposal payload of a suggestion.

    Two runs over an unchanged snapshot produce the same hash for the same
    proposal, which lets reviewers spot repeated suggestions across runs.
    """
    return stable_hash({"kind": kind, "target": target})
