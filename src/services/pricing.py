"""Final price calculation from an original price and a discount."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_CENT = Decimal("0.01")


def _to_decimal(value) -> Decimal:
    # str() first so binary float artifacts (2.675 -> 2.67499...) do not leak into rounding
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal(0)
    return result if result.is_finite() else Decimal(0)


def round2(value) -> float:
    """Round half-up to two decimals."""
    return float(_to_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP))


def compute_final_price(
    original: float | None,
    percent: float | None = None,
    fallback_absolute: float | None = None,
) -> float:
    """
    Compute the price a product sells at.

    Args:
        original: Original (list) price; non-finite or missing counts as 0
        percent: Percentage discount in [0, 100], or None
        fallback_absolute: Legacy fixed sale price, used only when no percentage is given

    Returns:
        The final price rounded half-up to two decimals, never negative
    """
    base = _to_decimal(original if original is not None else 0)

    if percent is not None:
        final = base * (Decimal(1) - _to_decimal(percent) / Decimal(100))
        final = final.quantize(_CENT, rounding=ROUND_HALF_UP)
        return float(max(Decimal(0), final))

    if fallback_absolute is not None:
        return max(0.0, round2(fallback_absolute))

    return max(0.0, round2(base))
