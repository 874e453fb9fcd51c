from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation

from buildledger.errors import InvalidQuantity

# Range of the signed 32-bit INTEGER columns that hold ledger and BOM quantities.
MAX_QUANTITY = 2**31 - 1


def coerce_quantity(value, *, minimum: int | None = None) -> int:
    """Return ``value`` as an exact ``int`` or raise :class:`InvalidQuantity`.

    Accepts ints, integral floats/Decimals and strings holding an integer
    ("12", " -4 ", "3.0"). Booleans, fractions, NaN and infinities are
    rejected, as is anything outside +/-``MAX_QUANTITY``.
    """

    if isinstance(value, bool) or value is None:
        raise InvalidQuantity(value)

    if isinstance(value, int):
        result = value
    else:
        if isinstance(value, float):
            if not math.isfinite(value):
                raise InvalidQuantity(value)
            candidate = Decimal(str(value))
        elif isinstance(value, Decimal):
            candidate = value
        elif isinstance(value, str):
            text = value.strip()
            if not text:
                raise InvalidQuantity(value)
            try:
                candidate = Decimal(text)
            except (InvalidOperation, ValueError):
                raise InvalidQuantity(value) from None
        else:
            raise InvalidQuantity(value)

        if not candidate.is_finite() or candidate != candidate.to_integral_value():
            raise InvalidQuantity(value)
        result = int(candidate)

    if abs(result) > MAX_QUANTITY:
        raise InvalidQuantity(value, f"Quantity is out of range: {value!r}")

    if minimum is not None and result < minimum:
        raise InvalidQuantity(value, f"Quantity must be at least {minimum}: {value!r}")
    return result
