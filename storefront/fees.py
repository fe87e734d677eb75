"""Marketplace fund split between the platform and the seller."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from . import settings
from .money import round_half_up


@dataclass(frozen=True)
class FeeSplit:
    total_minor_units: int
    transfer_to_seller_minor_units: int
    fee_fraction: Decimal

    @property
    def platform_retained_minor_units(self) -> int:
        return self.total_minor_units - self.transfer_to_seller_minor_units


def calculate_fee_split(total_minor_units: int, fee_fraction: Optional[float] = None) -> FeeSplit:
    """Seller receives ``round_half_up(total * (1 - fee_fraction))``; the platform keeps the rest.

    Only meaningful for marketplace payments. Direct payments have no seller
    and the platform keeps the full amount, so callers skip this entirely.
    """
    if fee_fraction is None:
        fee_fraction = settings.PLATFORM_FEE_FRACTION
    if isinstance(total_minor_units, bool) or not isinstance(total_minor_units, int):
        raise ValueError("total_minor_units must be an integer")
    if total_minor_units < 0:
        raise ValueError("total_minor_units must be >= 0")

    fraction = Decimal(str(fee_fraction))
    if fraction < 0 or fraction > 1:
        raise ValueError(f"fee_fraction must be within [0, 1], got {fee_fraction}")

    transfer = round_half_up(Decimal(total_minor_units) * (Decimal(1) - fraction))
    # 0 <= transfer <= total
    transfer = max(0, min(transfer, total_minor_units))

    return FeeSplit(
        total_minor_units=total_minor_units,
        transfer_to_seller_minor_units=transfer,
        fee_fraction=fraction,
    )
