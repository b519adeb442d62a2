"""
Value Serialization

JSON encoding of cached values and metadata for stores that keep bytes
or strings rather than Python objects.
"""

import json
from typing import Any, Optional


def serialize_value(value: Any) -> str:
    """
    Serialize a Python value to a JSON string.

    Uses a default handler for datetimes, pydantic models and other
    non-JSON types.
    """
    def default_handler(obj):
        if hasattr(obj, "model_dump"):
            return obj.model_dump(mode="json", by_alias=True)
        if hasattr(obj, "isoformat"):
            return obj.isoformat()
        if hasattr(obj, "__dict__"):
            return obj.__dict__
        return str(obj)

    return json.dumps(value, default=default_handler, ensure_ascii=False)


def deserialize_value(data: Optional[str]) -> Any:
    """Deserialize a JSON string back to a Python value."""
    if not data:
        return None
    return json.loads(data)
