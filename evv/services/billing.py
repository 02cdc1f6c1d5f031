"""
Billing unit derivation for completed visits.

Units are hours quantized to the nearest quarter hour, rounding half up:
``units = round_half_up(hours * 4) / 4``. The quarter-hour count is computed
from exact seconds (900 s per quarter) with ``Decimal`` so boundaries such as
3:07:30 always land on the same side (3.25).
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from ..policy import EVVPolicy

logger = logging.getLogger(__name__)

SECONDS_PER_QUARTER_HOUR = Decimal(900)
SECONDS_PER_HOUR = Decimal(3600)
TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class BillingUnits:
    raw_hours: Decimal
    actual_hours: Decimal
    units: Decimal
    billing_code: str
    modifier: str
    needs_review: bool = False


def _exact_seconds(delta):
    return (
        Decimal(delta.days * 86400 + delta.seconds)
        + Decimal(delta.microseconds) / Decimal(1_000_000)
    )


def quarter_hour_units(check_in_time, check_out_time):
    seconds = _exact_seconds(check_out_time - check_in_time)
    quarters = (seconds / SECONDS_PER_QUARTER_HOUR).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return (quarters / 4).quantize(TWO_PLACES)


class BillingUnitCalculator:
    def __init__(self, policy=None):
        self.policy = policy or EVVPolicy.from_settings()

    def calculate(self, check_in_time, check_out_time, billing_code=None, modifier=None):
        billing_code = billing_code or self.policy.default_billing_code
        modifier = modifier or self.policy.default_modifier

        if check_in_time is None or check_out_time is None or check_out_time < check_in_time:
            logger.info(
                f"Billing fallback of {self.policy.default_units} units "
                f"(check-in={check_in_time}, check-out={check_out_time}), flagged for review"
            )
            return BillingUnits(
                raw_hours=Decimal(0),
                actual_hours=Decimal("0.00"),
                units=self.policy.default_units.quantize(TWO_PLACES),
                billing_code=billing_code,
                modifier=modifier,
                needs_review=True,
            )

        raw_hours = _exact_seconds(check_out_time - check_in_time) / SECONDS_PER_HOUR
        return BillingUnits(
            raw_hours=raw_hours,
            actual_hours=raw_hours.quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
            units=quarter_hour_units(check_in_time, check_out_time),
            billing_code=billing_code,
            modifier=modifier,
        )

    def calculate_for_shift(self, shift):
        return self.calculate(
            shift.check_in_time,
            shift.check_out_time,
            billing_code=shift.billing_code,
            modifier=shift.modifier,
        )
