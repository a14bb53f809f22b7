"""
Invoice lifecycle state machine.

    pending -> verified -> financed -> repaid
                                    -> defaulted
    pending -> rejected
    pending -> cancelled

Every other (status, operation) pair fails with InvalidStateTransitionError and
leaves the invoice untouched. Re-running an operation that already happened
(verify on a decided invoice, finance on a financed one, repay on a repaid one)
raises AlreadyProcessedError so retries never duplicate a funds movement.
"""

from datetime import datetime
from typing import Dict, Optional, Set
from invoicefin_gateway.domain.assessment import FraudSignal, RiskAssessment
from invoicefin_gateway.domain.exceptions import (
    AlreadyProcessedError,
    EligibilityRejectedError,
    InsufficientRepaymentError,
    InvalidStateTransitionError,
)
from invoicefin_gateway.domain.models import FinancingTerms, Invoice, InvoiceStatus

S = InvoiceStatus

ALLOWED_TRANSITIONS: Dict[InvoiceStatus, Set[InvoiceStatus]] = {
    S.PENDING: {S.VERIFIED, S.REJECTED, S.CANCELLED},
    S.VERIFIED: {S.FINANCED},
    S.FINANCED: {S.REPAID, S.DEFAULTED},
    S.REPAID: set(),
    S.DEFAULTED: set(),
    S.REJECTED: set(),
    S.CANCELLED: set(),
}

TERMINAL_STATES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)

# Statuses from which the named operation has, by definition, already run
_ALREADY_DONE = {
    "verify": {S.VERIFIED, S.REJECTED, S.FINANCED, S.REPAID, S.DEFAULTED},
    "finance": {S.FINANCED, S.REPAID, S.DEFAULTED},
    "repay": {S.REPAID},
    "mark_defaulted": {S.DEFAULTED},
    "cancel": {S.CANCELLED},
}


def _require_status(invoice: Invoice, operation: str, *legal: InvoiceStatus) -> None:
    if invoice.status in legal:
        return
    if invoice.status in _ALREADY_DONE.get(operation, ()):
        raise AlreadyProcessedError(
            f"Invoice {invoice.id} is already {invoice.status.value}; {operation} cannot run again",
            invoice_id=str(invoice.id),
            operation=operation,
            current_status=invoice.status.value,
        )
    raise InvalidStateTransitionError(
        f"Cannot {operation} invoice {invoice.id} in status {invoice.status.value}",
        invoice_id=str(invoice.id),
        operation=operation,
        current_status=invoice.status.value,
        required_status=[s.value for s in legal],
    )


def _move(invoice: Invoice, target: InvoiceStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[invoice.status]:
        raise InvalidStateTransitionError(
            f"Invoice {invoice.id} cannot move from {invoice.status.value} to {target.value}",
            invoice_id=str(invoice.id),
            current_status=invoice.status.value,
            target_status=target.value,
        )
    invoice.status = target


def verify(
    invoice: Invoice,
    assessment: RiskAssessment,
    fraud_signal: Optional[FraudSignal] = None,
) -> Invoice:
    """Record the risk verdict: reject recommendation -> rejected, else verified"""
    _require_status(invoice, "verify", S.PENDING)

    invoice.risk_score = assessment.overall_score
    invoice.ai_verification_result = assessment.model_dump(mode="json", by_alias=True)
    if fraud_signal is not None:
        invoice.fraud_detection_result = fraud_signal.model_dump(mode="json", by_alias=True)

    _move(invoice, S.REJECTED if assessment.recommendation == "reject" else S.VERIFIED)
    return invoice


def ensure_financeable(invoice: Invoice, min_risk_score: int) -> None:
    """Status and risk-floor preconditions of finance, without mutating anything"""
    _require_status(invoice, "finance", S.VERIFIED)

    if invoice.risk_score is None or invoice.risk_score < min_risk_score:
        raise EligibilityRejectedError(
            f"risk score {invoice.risk_score} below minimum {min_risk_score}",
            invoice_id=str(invoice.id),
            risk_score=invoice.risk_score,
            min_risk_score=min_risk_score,
        )


def finance(
    invoice: Invoice,
    terms: FinancingTerms,
    external_tx_ref: str,
    min_risk_score: int,
    now: datetime,
) -> Invoice:
    """Book the advance exactly once; financed amount never changes afterwards"""
    ensure_financeable(invoice, min_risk_score)

    invoice.financed_amount_cents = terms.advance_amount_cents
    invoice.fee_amount_cents = terms.fee_amount_cents
    invoice.advance_rate = terms.advance_rate
    invoice.financed_at = now
    invoice.financing_tx_ref = external_tx_ref
    _move(invoice, S.FINANCED)
    return invoice


def repay(invoice: Invoice, amount_cents: int, external_tx_ref: Optional[str], now: datetime) -> Invoice:
    """Full settlement only: amount must cover the advance plus the fee"""
    _require_status(invoice, "repay", S.FINANCED)

    required = invoice.required_repayment_cents
    if amount_cents < required:
        raise InsufficientRepaymentError(
            f"repayment {amount_cents} below required {required}",
            invoice_id=str(invoice.id),
            amount_cents=amount_cents,
            required_cents=required,
        )

    invoice.repaid_at = now
    invoice.repayment_tx_ref = external_tx_ref
    _move(invoice, S.REPAID)
    return invoice


def mark_defaulted(invoice: Invoice, now: datetime) -> Invoice:
    """Grace-period policy is checked by the orchestrator before calling this"""
    _require_status(invoice, "mark_defaulted", S.FINANCED)
    invoice.defaulted_at = now
    _move(invoice, S.DEFAULTED)
    return invoice


def cancel(invoice: Invoice) -> Invoice:
    _require_status(invoice, "cancel", S.PENDING)
    _move(invoice, S.CANCELLED)
    return invoice
