from __future__ import annotations

import datetime as dt
import math
from typing import Any, Optional


def as_float(raw: Any) -> Optional[float]:
    """Finite number from a Data API field (number or numeric string), else ``None``."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def as_int(raw: Any) -> Optional[int]:
    value = as_float(raw)
    return None if value is None else int(value)


def utcnow() -> dt.datetime:
    return dt.datetime.now(tz=dt.timezone.utc)
