"""Validated shapes for risk-assessment and fraud-signal provider payloads"""

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from invoicefin_gateway.domain.exceptions import InvalidInputError


class RiskFactors(BaseModel):
    """Per-factor sub-scores reported by the provider (0-100, higher is better)"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    invoice_quality: int = Field(..., ge=0, le=100, alias="invoiceQuality")
    buyer_reliability: int = Field(..., ge=0, le=100, alias="buyerReliability")
    payment_history: int = Field(..., ge=0, le=100, alias="paymentHistory")
    industry_risk: int = Field(..., ge=0, le=100, alias="industryRisk")
    amount_risk: int = Field(..., ge=0, le=100, alias="amountRisk")


class RiskAssessment(BaseModel):
    """Risk provider verdict consumed by invoice verification"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    overall_score: int = Field(..., ge=0, le=100, alias="overallScore", strict=True)
    recommendation: Literal["approve", "review", "reject"]
    factors: Optional[RiskFactors] = None
    reasoning: str = ""


class FraudSignal(BaseModel):
    """Advisory fraud flags; stored on the invoice, never gates a transition"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    is_suspicious: bool = Field(..., alias="isSuspicious")
    risk_level: Literal["low", "medium", "high"] = Field(..., alias="riskLevel")
    risk_score: int = Field(..., ge=0, le=100, alias="riskScore")
    flags: List[str] = Field(default_factory=list)
    analysis: str = ""


def parse_risk_assessment(payload: Any) -> RiskAssessment:
    """
    Validate a raw provider payload.

    Raises:
        InvalidInputError: payload is not an object, misses required fields,
            or carries an out-of-range score or unknown recommendation
    """
    if isinstance(payload, RiskAssessment):
        return payload
    try:
        return RiskAssessment.model_validate(payload)
    except ValidationError as e:
        raise InvalidInputError(
            f"Malformed risk assessment: {e.error_count()} invalid field(s)",
            errors=_summarize(e),
        ) from e


def parse_fraud_signal(payload: Any) -> FraudSignal:
    if isinstance(payload, FraudSignal):
        return payload
    try:
        return FraudSignal.model_validate(payload)
    except ValidationError as e:
        raise InvalidInputError(
            f"Malformed fraud signal: {e.error_count()} invalid field(s)",
            errors=_summarize(e),
        ) from e


def _summarize(error: ValidationError) -> List[Dict[str, str]]:
    return [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in error.errors()
    ]
