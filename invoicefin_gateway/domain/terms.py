"""Financing terms calculator - advance rate, fee and net advance for an invoice"""

from decimal import Decimal, ROUND_HALF_UP
from invoicefin_gateway.domain.models import FinancingTerms
from invoicefin_gateway.domain.exceptions import InvalidInputError

BASE_ADVANCE_RATE = Decimal("0.70")
MAX_RISK_BONUS = Decimal("0.10")
PLATFORM_FEE_RATE = Decimal("0.015")


def round_cents(value: Decimal) -> int:
    """Round a cent-denominated Decimal to a whole cent, half-up"""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_risk_score(risk_score: int) -> None:
    if isinstance(risk_score, bool) or not isinstance(risk_score, int):
        raise InvalidInputError(f"risk score must be an integer, got {risk_score!r}", risk_score=risk_score)
    if not 0 <= risk_score <= 100:
        raise InvalidInputError(
            f"risk score {risk_score} outside 0-100",
            risk_score=risk_score,
            minimum=0,
            maximum=100,
        )


def advance_rate_for(risk_score: int) -> Decimal:
    """
    Advance rate as a fraction of face value.

    Linear from 70% at risk score 0 to 80% at risk score 100. The minimum
    risk score policy is an eligibility floor only and does not shift this line.
    """
    validate_risk_score(risk_score)
    return BASE_ADVANCE_RATE + (Decimal(risk_score) / Decimal(100)) * MAX_RISK_BONUS


def compute_terms(face_value_cents: int, risk_score: int) -> FinancingTerms:
    """
    Compute advance, fee and rate for an invoice.

    The 1.5% platform fee is deducted from the gross advance, not added on top.
    Amounts round half-up to whole cents; the unrounded rate drives all math,
    so advance + fee always equals the rounded gross advance.

    Example:
        $10,000.00 at risk 50 -> rate 75%, gross $7,500.00, fee $112.50,
        advance $7,387.50
    """
    if isinstance(face_value_cents, bool) or not isinstance(face_value_cents, int):
        raise InvalidInputError(f"face value must be integer cents, got {face_value_cents!r}")
    if face_value_cents <= 0:
        raise InvalidInputError(
            f"face value {face_value_cents} must be positive",
            face_value_cents=face_value_cents,
        )

    rate = advance_rate_for(risk_score)
    gross = Decimal(face_value_cents) * rate
    fee = round_cents(gross * PLATFORM_FEE_RATE)
    gross_cents = round_cents(gross)

    return FinancingTerms(
        advance_amount_cents=gross_cents - fee,
        advance_rate=rate,
        advance_rate_pct=round_cents(rate * 100),
        fee_amount_cents=fee,
        gross_advance_cents=gross_cents,
    )
