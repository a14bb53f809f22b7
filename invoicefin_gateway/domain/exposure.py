"""Pool exposure limits applied before an invoice is financed"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List
from invoicefin_gateway.domain.models import Pool
from invoicefin_gateway.domain.exceptions import EligibilityRejectedError


@dataclass(frozen=True)
class ExposurePolicy:
    min_risk_score: int
    max_single_invoice_pct: Decimal
    max_utilization_pct: Decimal


def exposure_violations(pool: Pool, advance_cents: int, policy: ExposurePolicy) -> List[str]:
    """
    Check an advance against both caps and return a message per violated cap.

    - Single invoice: advance <= balance * max_single_invoice_pct
    - Aggregate: deployed + advance <= (balance + deployed) * max_utilization_pct
      With nothing deployed this is advance <= balance * max_utilization_pct.
    """
    violations = []

    single_cap = Decimal(pool.balance_cents) * policy.max_single_invoice_pct
    if advance_cents > single_cap:
        violations.append(
            f"advance {advance_cents} exceeds single-invoice cap {int(single_cap)} "
            f"({policy.max_single_invoice_pct * 100:.0f}% of balance {pool.balance_cents})"
        )

    total_assets = pool.balance_cents + pool.deployed_cents
    utilization_cap = Decimal(total_assets) * policy.max_utilization_pct
    if pool.deployed_cents + advance_cents > utilization_cap:
        violations.append(
            f"deployed {pool.deployed_cents} plus advance {advance_cents} exceeds utilization cap "
            f"{int(utilization_cap)} ({policy.max_utilization_pct * 100:.0f}% of {total_assets})"
        )

    return violations


def check_exposure(pool: Pool, advance_cents: int, policy: ExposurePolicy) -> None:
    violations = exposure_violations(pool, advance_cents, policy)
    if violations:
        raise EligibilityRejectedError(
            "; ".join(violations),
            advance_cents=advance_cents,
            balance_cents=pool.balance_cents,
            deployed_cents=pool.deployed_cents,
            max_single_invoice_pct=str(policy.max_single_invoice_pct),
            max_utilization_pct=str(policy.max_utilization_pct),
        )
