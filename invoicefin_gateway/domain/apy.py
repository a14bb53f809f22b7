"""Liquidity provider yield estimate from pool utilization (display only)"""

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

logger = logging.getLogger(__name__)

BASE_APY = Decimal("5")
CAP_APY = Decimal("20")
UTILIZATION_BONUS = Decimal("10")  # percentage points at 100% utilization
DEFAULT_APY = Decimal("8.5")


def estimate_apy(pool_value_cents: Optional[int], active_financed_cents: Optional[int]) -> Decimal:
    """
    APY percent = 5 + utilization * 10, bounded to [5, 20].

    Never raises: an empty pool or unusable inputs fall back to 8.5 so a
    display value can never block a financing operation.
    """
    try:
        if not pool_value_cents or active_financed_cents is None:
            return DEFAULT_APY
        utilization = Decimal(active_financed_cents) / Decimal(pool_value_cents)
        apy = BASE_APY + utilization * UTILIZATION_BONUS
        apy = min(CAP_APY, max(BASE_APY, apy))
        return apy.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except (InvalidOperation, ZeroDivisionError, TypeError, ValueError) as e:
        logger.warning(f"APY estimate fell back to default: {e}")
        return DEFAULT_APY
