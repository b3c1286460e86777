"""
JSON helpers for API responses.

Money is computed as Decimal; responses carry plain floats like the
model to_dict() methods do.
"""
from decimal import Decimal
from typing import Any


def json_safe(value: Any) -> Any:
    """Recursively convert Decimals (and dataclass-like to_dict objects) for jsonify."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    if hasattr(value, 'to_dict'):
        return json_safe(value.to_dict())
    return value
