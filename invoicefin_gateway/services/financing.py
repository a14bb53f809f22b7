"""
Financing orchestrator - composes terms, lifecycle and pool accounting.

Every operation that touches an invoice or the pool runs inside the pool's
lock and a single database transaction: the invoice row and pool row are read
FOR UPDATE, all checks run against that live state, and the lifecycle
transition, pool movement, business aggregates and transfer record commit
together or not at all.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional, TypeVar
from sqlalchemy.orm import Session

from invoicefin_gateway.config import settings
from invoicefin_gateway.domain import lifecycle
from invoicefin_gateway.domain import pool as pool_accounting
from invoicefin_gateway.domain.assessment import parse_fraud_signal, parse_risk_assessment
from invoicefin_gateway.domain.exceptions import (
    DomainException,
    EligibilityRejectedError,
    InvalidStateTransitionError,
    NotFoundError,
)
from invoicefin_gateway.domain.exposure import ExposurePolicy, check_exposure, exposure_violations
from invoicefin_gateway.domain.models import (
    FinancingQuote,
    FinancingTerms,
    Invoice,
    InvoiceStatus,
    Pool,
    TransferKind,
)
from invoicefin_gateway.domain.terms import compute_terms
from invoicefin_gateway.domain.track_record import record_default, record_financing, record_repayment
from invoicefin_gateway.infrastructure.database.repositories import (
    BusinessRepository,
    InvoiceRepository,
    PoolRepository,
    TransferRepository,
)
from invoicefin_gateway.infrastructure.observability.logging import log_financing_event
from invoicefin_gateway.infrastructure.observability.metrics import observe_pool, record_advance, record_operation
from invoicefin_gateway.services.unit_of_work import PoolLocks, pool_locks, unit_of_work
from invoicefin_gateway.utils.date_utils import grace_period_end, is_past_grace_period, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")


def default_policy() -> ExposurePolicy:
    return ExposurePolicy(
        min_risk_score=settings.min_risk_score,
        max_single_invoice_pct=settings.max_single_invoice_pct,
        max_utilization_pct=settings.max_utilization_pct,
    )


@dataclass(frozen=True)
class FinancingResult:
    invoice: Invoice
    terms: FinancingTerms
    pool: Pool


@dataclass(frozen=True)
class SettlementResult:
    """Outcome of a repayment or default"""

    invoice: Invoice
    pool: Pool
    amount_cents: int


class FinancingOrchestrator:
    """Invoice verification, financing, repayment and default handling against one pool"""

    def __init__(
        self,
        db: Session,
        locks: Optional[PoolLocks] = None,
        policy: Optional[ExposurePolicy] = None,
        pool_name: Optional[str] = None,
        grace_period_days: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.locks = locks or pool_locks
        self.policy = policy or default_policy()
        self.pool_name = pool_name or settings.pool_name
        self.grace_period_days = (
            grace_period_days if grace_period_days is not None else settings.default_grace_period_days
        )
        self.clock = clock
        self.invoices = InvoiceRepository(db)
        self.businesses = BusinessRepository(db)
        self.pools = PoolRepository(db)
        self.transfers = TransferRepository(db)

    def _locked(self, operation: str, invoice_id: Any, work: Callable[[], T]) -> T:
        """Run work as one unit of work under the pool lock, with metrics and logs"""
        with self.locks.for_pool(self.pool_name):
            try:
                with unit_of_work(self.db):
                    result = work()
            except DomainException as e:
                record_operation(operation, type(e).__name__)
                log_financing_event(operation, "rejected", invoice_id=str(invoice_id), reason=e.message)
                raise
        record_operation(operation, "ok")
        return result

    def _load_invoice(self, invoice_id: uuid.UUID) -> Invoice:
        invoice = self.invoices.get(invoice_id, for_update=True)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found", invoice_id=str(invoice_id))
        return invoice

    def verify(self, invoice_id: uuid.UUID, assessment: Any, fraud_signal: Any = None) -> Invoice:
        """
        Apply a risk provider verdict to a pending invoice.

        Payloads are validated before the state machine sees them; a malformed
        payload raises InvalidInputError and the invoice stays pending.
        """
        parsed_assessment = parse_risk_assessment(assessment)
        parsed_fraud = parse_fraud_signal(fraud_signal) if fraud_signal is not None else None

        def work() -> Invoice:
            invoice = self._load_invoice(invoice_id)
            lifecycle.verify(invoice, parsed_assessment, parsed_fraud)
            self.invoices.save(invoice)
            return invoice

        invoice = self._locked("verify", invoice_id, work)
        log_financing_event(
            "verify",
            "ok",
            invoice_id=str(invoice_id),
            status=invoice.status.value,
            risk_score=invoice.risk_score,
        )
        return invoice

    def finance(self, invoice_id: uuid.UUID, external_tx_ref: str) -> FinancingResult:
        """
        Finance a verified invoice exactly once.

        Flow:
        1. Lock invoice and pool rows
        2. Compute terms from face value and risk score
        3. Check single-invoice and utilization caps against the live pool
        4. Transition to financed, debit the pool, update business aggregates
        5. Record the funds transfer and commit

        Raises:
            NotFoundError, AlreadyProcessedError, InvalidStateTransitionError,
            EligibilityRejectedError, InsufficientFundsError
        """

        def work() -> FinancingResult:
            invoice = self._load_invoice(invoice_id)
            pool = self.pools.get_or_create(self.pool_name, for_update=True)

            # Status first so a retry reports already-financed, not a cap breach
            lifecycle.ensure_financeable(invoice, self.policy.min_risk_score)

            terms = compute_terms(invoice.amount_cents, invoice.risk_score)
            check_exposure(pool, terms.advance_amount_cents, self.policy)

            lifecycle.finance(invoice, terms, external_tx_ref, self.policy.min_risk_score, self.clock())
            pool_accounting.transfer_for_financing(pool, terms.advance_amount_cents)

            business = self.businesses.get(invoice.business_id, for_update=True)
            record_financing(business, terms.advance_amount_cents)

            self.invoices.save(invoice)
            self.pools.save(pool)
            self.businesses.save(business)
            self.transfers.record(
                pool_id=pool.id,
                kind=TransferKind.FINANCE,
                amount_cents=terms.advance_amount_cents,
                invoice_id=invoice.id,
                business_id=invoice.business_id,
                wallet_address=business.wallet_address,
                external_tx_ref=external_tx_ref,
            )
            return FinancingResult(invoice=invoice, terms=terms, pool=pool)

        result = self._locked("finance", invoice_id, work)
        observe_pool(result.pool)
        record_advance(result.terms.advance_amount_cents)
        log_financing_event(
            "finance",
            "ok",
            invoice_id=str(invoice_id),
            amount_cents=result.terms.advance_amount_cents,
            fee_cents=result.terms.fee_amount_cents,
            advance_rate_pct=result.terms.advance_rate_pct,
        )
        return result

    def repay(self, invoice_id: uuid.UUID, amount_cents: int, external_tx_ref: Optional[str] = None) -> SettlementResult:
        """Settle a financed invoice in full and return the funds to the pool"""

        def work() -> SettlementResult:
            invoice = self._load_invoice(invoice_id)
            pool = self.pools.get_or_create(self.pool_name, for_update=True)

            lifecycle.repay(invoice, amount_cents, external_tx_ref, self.clock())
            pool_accounting.receive_repayment(pool, amount_cents, invoice.financed_amount_cents)

            business = self.businesses.get(invoice.business_id, for_update=True)
            record_repayment(business)

            self.invoices.save(invoice)
            self.pools.save(pool)
            self.businesses.save(business)
            self.transfers.record(
                pool_id=pool.id,
                kind=TransferKind.REPAY,
                amount_cents=amount_cents,
                invoice_id=invoice.id,
                business_id=invoice.business_id,
                wallet_address=business.wallet_address,
                external_tx_ref=external_tx_ref,
            )
            return SettlementResult(invoice=invoice, pool=pool, amount_cents=amount_cents)

        result = self._locked("repay", invoice_id, work)
        observe_pool(result.pool)
        log_financing_event("repay", "ok", invoice_id=str(invoice_id), amount_cents=amount_cents)
        return result

    def mark_defaulted(self, invoice_id: uuid.UUID) -> SettlementResult:
        """
        Default a financed invoice once the grace period past its due date is over.

        Grace is measured against the orchestrator clock, never a caller date.
        The deployed principal is written off against the pool.
        """
        as_of = self.clock().date()

        def work() -> SettlementResult:
            invoice = self._load_invoice(invoice_id)
            pool = self.pools.get_or_create(self.pool_name, for_update=True)

            if invoice.status is InvoiceStatus.FINANCED and not is_past_grace_period(
                invoice.due_date, self.grace_period_days, as_of
            ):
                raise EligibilityRejectedError(
                    f"grace period for invoice {invoice.id} runs until "
                    f"{grace_period_end(invoice.due_date, self.grace_period_days).isoformat()}",
                    invoice_id=str(invoice.id),
                    due_date=invoice.due_date.isoformat(),
                    as_of=as_of.isoformat(),
                    grace_period_days=self.grace_period_days,
                )

            lifecycle.mark_defaulted(invoice, self.clock())
            pool_accounting.write_off(pool, invoice.financed_amount_cents)

            business = self.businesses.get(invoice.business_id, for_update=True)
            record_default(business)

            self.invoices.save(invoice)
            self.pools.save(pool)
            self.businesses.save(business)
            self.transfers.record(
                pool_id=pool.id,
                kind=TransferKind.WRITE_OFF,
                amount_cents=invoice.financed_amount_cents,
                invoice_id=invoice.id,
                business_id=invoice.business_id,
            )
            return SettlementResult(invoice=invoice, pool=pool, amount_cents=invoice.financed_amount_cents)

        result = self._locked("mark_defaulted", invoice_id, work)
        observe_pool(result.pool)
        log_financing_event("mark_defaulted", "ok", invoice_id=str(invoice_id), amount_cents=result.amount_cents)
        return result

    def sweep_overdue(self) -> List[uuid.UUID]:
        """Default every financed invoice past its grace period; each in its own transaction"""
        as_of = self.clock().date()
        cutoff = as_of - timedelta(days=self.grace_period_days)
        candidates = self.invoices.get_overdue_financed_ids(due_before=cutoff)
        self.db.rollback()  # end the read so each default starts fresh

        defaulted = []
        for invoice_id in candidates:
            try:
                self.mark_defaulted(invoice_id)
            except InvalidStateTransitionError:
                # Repaid or defaulted concurrently since the scan
                logger.info(f"Skipping invoice {invoice_id}: no longer financed")
                continue
            defaulted.append(invoice_id)
        return defaulted

    def cancel(self, invoice_id: uuid.UUID, business_id: uuid.UUID) -> Invoice:
        """Seller withdraws a pending invoice"""

        def work() -> Invoice:
            invoice = self._load_invoice(invoice_id)
            if invoice.business_id != business_id:
                # Not revealing another seller's invoice
                raise NotFoundError(f"Invoice {invoice_id} not found", invoice_id=str(invoice_id))
            lifecycle.cancel(invoice)
            self.invoices.save(invoice)
            return invoice

        invoice = self._locked("cancel", invoice_id, work)
        log_financing_event("cancel", "ok", invoice_id=str(invoice_id))
        return invoice

    def get_quote(self, face_value_cents: int, risk_score: int) -> FinancingQuote:
        """Read-only terms preview with cap eligibility against the current pool"""
        terms = compute_terms(face_value_cents, risk_score)
        pool = self.pools.get(self.pool_name) or Pool(id=uuid.uuid4(), name=self.pool_name)

        cap_violations = exposure_violations(pool, terms.advance_amount_cents, self.policy)
        meets_risk_floor = risk_score >= self.policy.min_risk_score
        reasons = list(cap_violations)
        if not meets_risk_floor:
            reasons.append(f"risk score {risk_score} below minimum {self.policy.min_risk_score}")

        return FinancingQuote(
            terms=terms,
            is_eligible=not cap_violations,
            meets_risk_floor=meets_risk_floor,
            reasons=reasons,
        )
