from dataclasses import dataclass
from decimal import Decimal

from wms import config
from wms.utils import quantize_money, quantize_rate


@dataclass(frozen=True)
class FeeSchedule:
    tier1_threshold: Decimal
    tier2_threshold: Decimal
    tier1_rate: Decimal
    tier2_rate: Decimal
    tier3_rate: Decimal


def default_fee_schedule() -> FeeSchedule:
    return FeeSchedule(
        tier1_threshold=config.FEE_TIER1_THRESHOLD,
        tier2_threshold=config.FEE_TIER2_THRESHOLD,
        tier1_rate=config.FEE_TIER1_RATE,
        tier2_rate=config.FEE_TIER2_RATE,
        tier3_rate=config.FEE_TIER3_RATE,
    )


def fee_tier(price: Decimal, schedule: FeeSchedule | None = None) -> int | None:
    schedule = schedule or default_fee_schedule()
    price = Decimal(price or 0)
    if price <= 0:
        return None
    if price <= schedule.tier1_threshold:
        return 1
    if price <= schedule.tier2_threshold:
        return 2
    return 3


def calculate_fee_rate(price: Decimal, schedule: FeeSchedule | None = None) -> Decimal:
    schedule = schedule or default_fee_schedule()
    tier = fee_tier(price, schedule)
    if tier is None:
        return Decimal("0")
    return quantize_rate({1: schedule.tier1_rate, 2: schedule.tier2_rate, 3: schedule.tier3_rate}[tier])


def calculate_fee_amount(price: Decimal, schedule: FeeSchedule | None = None) -> Decimal:
    """Per-unit warehouse fee for an inbound line priced at ``price``."""
    return quantize_money(Decimal(price or 0) * calculate_fee_rate(price, schedule))


def apply_fee(line, schedule: FeeSchedule | None = None):
    line.fee_rate = calculate_fee_rate(line.unit_price, schedule)
    line.fee_amount = calculate_fee_amount(line.unit_price, schedule)
    return line
