from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
RATE_STEP = Decimal("0.0001")


def to_decimal(value: Decimal | float | int | str | None) -> Decimal:
    if value is None:
        return Decimal("0")
    return value if isinstance(value, Decimal) else Decimal(str(value))


def quantize_money(value: Decimal | float | int | str | None) -> Decimal | None:
    if value is None:
        return None
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def quantize_rate(value: Decimal | float | int | str | None) -> Decimal:
    """Fee rates are stored with four decimal places."""
    return to_decimal(value).quantize(RATE_STEP, rounding=ROUND_HALF_UP)


def weighted_average_cost(existing_qty, existing_cost, incoming_qty, incoming_cost) -> Decimal:
    """Unit cost after merging ``incoming_qty`` at ``incoming_cost`` into an existing stock row."""
    existing_qty = to_decimal(existing_qty)
    incoming_qty = to_decimal(incoming_qty)
    total_qty = existing_qty + incoming_qty
    if total_qty <= 0:
        return quantize_money(incoming_cost)
    total_value = existing_qty * to_decimal(existing_cost) + incoming_qty * to_decimal(incoming_cost)
    return quantize_money(total_value / total_qty)
