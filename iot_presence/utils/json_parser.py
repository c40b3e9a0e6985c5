"""
Helpers for parsing device telemetry JSON.
Devices sometimes wrap the real message as a JSON string inside a "data"
field (double encoding), so nested parsing has to be tolerant.
"""

import json
from typing import Optional, Any


def safe_parse_json(raw: Any) -> Optional[Any]:
    """Parse JSON bytes or str safely. Returns None on error."""
    try:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        return json.loads(raw)
    # ValueError covers JSONDecodeError, UnicodeDecodeError and oversized int literals
    except (ValueError, RecursionError, TypeError):
        return None


def parse_embedded_object(value: Any) -> Optional[dict]:
    """
    Second parse pass for a double-encoded field.
    Returns the decoded object, or None when value is not a non-empty
    string holding a JSON object.
    """
    if not isinstance(value, str) or not value:
        return None
    parsed = safe_parse_json(value)
    return parsed if isinstance(parsed, dict) else None


def get_non_empty_str(data: Optional[dict], key: str) -> Optional[str]:
    """Return data[key] when it is a non-empty string, else None."""
    if not isinstance(data, dict):
        return None
    value = data.get(key)
    return value if isinstance(value, str) and value else None
