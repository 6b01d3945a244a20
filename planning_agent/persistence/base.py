"""Shared helpers for raw-SQL repositories."""

import json
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any


def row_to_dict(row: Any) -> dict[str, Any]:
    """Convert a SQLAlchemy row to a dict, casting asyncpg types to JSON-safe primitives.

    asyncpg returns:
    - UUID columns as uuid.UUID objects → str
    - TIMESTAMPTZ / DATE columns as datetime / date objects → ISO-8601 str
    - NUMERIC columns as Decimal → float
    """
    result = {}
    for k, v in dict(row._mapping).items():
        if isinstance(v, uuid.UUID):
            result[k] = str(v)
        elif isinstance(v, datetime | date):
            result[k] = v.isoformat()
        elif isinstance(v, Decimal):
            result[k] = float(v)
        else:
            result[k] = v
    return result


def to_jsonb(value: Any) -> str | None:
    """Serialize a value for a ``CAST(:param AS jsonb)`` bind parameter."""
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, default=str)
