"""JSON helpers for values headed into JSON columns or the cache."""

import json
from typing import Any


def to_jsonable(value: Any) -> Any:
    """Round-trip through json so Decimals, datetimes and ids become plain JSON."""
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))
