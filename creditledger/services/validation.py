from __future__ import annotations

import math
from numbers import Real

from creditledger.core.errors import InvalidAmount, InvalidParams


def require_text(**values: object) -> None:
    missing = [name for name, value in values.items() if not value or not str(value).strip()]
    if missing:
        raise InvalidParams(f"missing {', '.join(missing)}")


def positive_int(value: object, name: str = "amount") -> int:
    """Return `value` as a positive int; floats must be finite whole numbers."""
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidAmount(f"invalid {name}: {value!r}")
    if not math.isfinite(value) or value <= 0 or int(value) != value:
        raise InvalidAmount(f"invalid {name}: {value!r}")
    return int(value)
