"""Business financing aggregates, updated only by financing events"""

from decimal import Decimal, ROUND_HALF_UP
from invoicefin_gateway.domain.models import Business

REPAYMENT_SCORE_BONUS = 2
DEFAULT_SCORE_PENALTY = 10


def _recompute_repayment_rate(business: Business) -> None:
    settled = business.invoices_repaid + business.invoices_defaulted
    if settled == 0:
        business.repayment_rate = Decimal("100")
        return
    rate = Decimal(business.invoices_repaid) * 100 / Decimal(settled)
    business.repayment_rate = rate.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def record_financing(business: Business, advance_cents: int) -> None:
    business.invoices_financed += 1
    business.total_amount_financed_cents += advance_cents


def record_repayment(business: Business) -> None:
    """A clean repayment nudges the seller's risk score up"""
    business.invoices_repaid += 1
    business.risk_score = min(100, business.risk_score + REPAYMENT_SCORE_BONUS)
    _recompute_repayment_rate(business)


def record_default(business: Business) -> None:
    business.invoices_defaulted += 1
    business.risk_score = max(0, business.risk_score - DEFAULT_SCORE_PENALTY)
    _recompute_repayment_rate(business)
