"""Tests for the financing orchestrator against a real (SQLite) database"""

import pytest
import threading
from datetime import date, datetime, timezone
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from invoicefin_gateway.domain.exceptions import (
    AlreadyProcessedError,
    EligibilityRejectedError,
    InsufficientRepaymentError,
    InvalidInputError,
    InvalidStateTransitionError,
    NotFoundError,
    StorageUnavailableError,
)
from invoicefin_gateway.domain.models import InvoiceStatus
from invoicefin_gateway.infrastructure.database.repositories import (
    BusinessRepository,
    InvoiceRepository,
    PoolRepository,
    TransferRepository,
)
from invoicefin_gateway.services.financing import FinancingOrchestrator

LP_WALLET = "0x" + "a" * 40


def assessment(score: int = 50, recommendation: str = "approve") -> dict:
    return {"overallScore": score, "recommendation": recommendation, "reasoning": "test"}


def test_finance_happy_path(db: Session, orchestrator: FinancingOrchestrator, funded_pool, verified_invoice):
    result = orchestrator.finance(verified_invoice.id, "0xpayout")

    assert result.invoice.status is InvoiceStatus.FINANCED
    assert result.invoice.financed_amount_cents == 738_750
    assert result.invoice.fee_amount_cents == 11_250
    assert result.invoice.required_repayment_cents == 750_000
    assert result.pool.balance_cents == 10_000_000 - 738_750
    assert result.pool.deployed_cents == 738_750
    assert result.pool.total_shares == 10_000_000

    business = BusinessRepository(db).get(verified_invoice.business_id)
    assert business.invoices_financed == 1
    assert business.total_amount_financed_cents == 738_750

    transfers = TransferRepository(db).get_transfers_by_invoice(verified_invoice.id)
    assert [(t.kind, t.amount_cents, t.external_tx_ref) for t in transfers] == [("finance", 738_750, "0xpayout")]


def test_finance_is_idempotent(db: Session, orchestrator: FinancingOrchestrator, funded_pool, verified_invoice):
    """A retried finance call fails and the pool is debited exactly once"""
    orchestrator.finance(verified_invoice.id, "0xpayout")

    with pytest.raises(AlreadyProcessedError):
        orchestrator.finance(verified_invoice.id, "0xpayout-retry")

    pool = PoolRepository(db).get(orchestrator.pool_name)
    assert pool.balance_cents == 10_000_000 - 738_750
    assert len(TransferRepository(db).get_transfers_by_invoice(verified_invoice.id)) == 1
    assert InvoiceRepository(db).get(verified_invoice.id).financing_tx_ref == "0xpayout"


def test_finance_rolls_back_when_storage_fails(
    db: Session,
    orchestrator: FinancingOrchestrator,
    funded_pool,
    verified_invoice,
    monkeypatch: pytest.MonkeyPatch,
):
    """A failure after the invoice transition leaves no partial effect"""

    def failing_save(self, pool):
        raise OperationalError("UPDATE liquidity_pool", {}, Exception("disk I/O error"))

    monkeypatch.setattr(PoolRepository, "save", failing_save)

    with pytest.raises(StorageUnavailableError):
        orchestrator.finance(verified_invoice.id, "0xpayout")

    monkeypatch.undo()
    invoice = InvoiceRepository(db).get(verified_invoice.id)
    assert invoice.status is InvoiceStatus.VERIFIED
    assert invoice.financed_amount_cents is None
    assert PoolRepository(db).get(orchestrator.pool_name).balance_cents == 10_000_000
    assert TransferRepository(db).get_transfers_by_invoice(verified_invoice.id) == []


def test_concurrent_finance_pays_out_once(db: Session, orchestrator: FinancingOrchestrator, funded_pool, verified_invoice):
    """Racing finance calls on one invoice: one succeeds, the rest are already processed"""
    SessionFactory = sessionmaker(autocommit=False, autoflush=False, bind=db.get_bind())
    outcomes = []
    outcomes_guard = threading.Lock()

    def attempt(n: int):
        session = SessionFactory()
        try:
            FinancingOrchestrator(session, locks=orchestrator.locks, pool_name=orchestrator.pool_name).finance(
                verified_invoice.id, f"0xpayout-{n}"
            )
            outcome = "ok"
        except AlreadyProcessedError:
            outcome = "already_processed"
        finally:
            session.close()
        with outcomes_guard:
            outcomes.append(outcome)

    threads = [threading.Thread(target=attempt, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["already_processed"] * 3 + ["ok"]
    db.expire_all()
    assert PoolRepository(db).get(orchestrator.pool_name).balance_cents == 10_000_000 - 738_750
    assert len(TransferRepository(db).get_transfers_by_invoice(verified_invoice.id)) == 1


def test_finance_rejected_by_single_invoice_cap(db: Session, orchestrator: FinancingOrchestrator, liquidity, make_invoice):
    """$1,000,000.00 pool caps a single advance at $100,000.00"""
    liquidity.deposit(LP_WALLET, 100_000_000)
    invoice = make_invoice(amount_cents=20_000_000)
    orchestrator.verify(invoice.id, assessment())

    with pytest.raises(EligibilityRejectedError, match="single-invoice cap"):
        orchestrator.finance(invoice.id, "0xpayout")

    assert InvoiceRepository(db).get(invoice.id).status is InvoiceStatus.VERIFIED
    assert PoolRepository(db).get(orchestrator.pool_name).balance_cents == 100_000_000


def test_finance_rejected_below_risk_floor(orchestrator: FinancingOrchestrator, funded_pool, make_invoice):
    invoice = make_invoice()
    orchestrator.verify(invoice.id, assessment(score=20))

    with pytest.raises(EligibilityRejectedError, match="below minimum 30"):
        orchestrator.finance(invoice.id, "0xpayout")


def test_finance_rejected_invoice(orchestrator: FinancingOrchestrator, funded_pool, make_invoice):
    invoice = make_invoice()
    rejected = orchestrator.verify(invoice.id, assessment(score=10, recommendation="reject"))
    assert rejected.status is InvoiceStatus.REJECTED

    with pytest.raises(InvalidStateTransitionError):
        orchestrator.finance(invoice.id, "0xpayout")


def test_finance_unknown_invoice(orchestrator: FinancingOrchestrator, funded_pool, missing_id):
    with pytest.raises(NotFoundError):
        orchestrator.finance(missing_id, "0xpayout")


def test_verify_malformed_assessment_keeps_invoice_pending(db: Session, orchestrator: FinancingOrchestrator, make_invoice):
    invoice = make_invoice()

    with pytest.raises(InvalidInputError):
        orchestrator.verify(invoice.id, {"overallScore": 150, "recommendation": "approve"})

    assert InvoiceRepository(db).get(invoice.id).status is InvoiceStatus.PENDING


def test_verify_twice_is_already_processed(orchestrator: FinancingOrchestrator, verified_invoice):
    with pytest.raises(AlreadyProcessedError):
        orchestrator.verify(verified_invoice.id, assessment())


def test_repay_requires_full_settlement(db: Session, orchestrator: FinancingOrchestrator, funded_pool, verified_invoice):
    orchestrator.finance(verified_invoice.id, "0xpayout")

    with pytest.raises(InsufficientRepaymentError):
        orchestrator.repay(verified_invoice.id, 749_999)
    assert InvoiceRepository(db).get(verified_invoice.id).status is InvoiceStatus.FINANCED

    result = orchestrator.repay(verified_invoice.id, 750_000, "0xrepay")

    assert result.invoice.status is InvoiceStatus.REPAID
    assert result.pool.balance_cents == 10_011_250
    assert result.pool.deployed_cents == 0

    business = BusinessRepository(db).get(verified_invoice.business_id)
    assert business.invoices_repaid == 1
    assert business.risk_score == 52

    kinds = [t.kind for t in TransferRepository(db).get_transfers_by_invoice(verified_invoice.id)]
    assert kinds == ["finance", "repay"]


def test_repay_twice_is_already_processed(orchestrator: FinancingOrchestrator, funded_pool, verified_invoice):
    orchestrator.finance(verified_invoice.id, "0xpayout")
    orchestrator.repay(verified_invoice.id, 750_000)

    with pytest.raises(AlreadyProcessedError):
        orchestrator.repay(verified_invoice.id, 750_000)


def later(orchestrator: FinancingOrchestrator, day: date) -> FinancingOrchestrator:
    """Same pool and locks, with the clock moved to noon UTC on day"""
    moment = datetime(day.year, day.month, day.day, 12, 0, tzinfo=timezone.utc)
    return FinancingOrchestrator(
        orchestrator.db, locks=orchestrator.locks, pool_name=orchestrator.pool_name, clock=lambda: moment
    )


def test_default_waits_for_grace_period(db: Session, orchestrator: FinancingOrchestrator, funded_pool, verified_invoice):
    """Due 2026-03-03 with 30 grace days: still protected on 2026-04-02"""
    orchestrator.finance(verified_invoice.id, "0xpayout")

    with pytest.raises(EligibilityRejectedError, match="grace period"):
        later(orchestrator, date(2026, 4, 2)).mark_defaulted(verified_invoice.id)

    result = later(orchestrator, date(2026, 4, 3)).mark_defaulted(verified_invoice.id)

    assert result.invoice.status is InvoiceStatus.DEFAULTED
    assert result.amount_cents == 738_750
    assert result.pool.deployed_cents == 0
    assert result.pool.balance_cents == 10_000_000 - 738_750

    business = BusinessRepository(db).get(verified_invoice.business_id)
    assert business.invoices_defaulted == 1
    assert business.risk_score == 40
    assert business.repayment_rate == 0


def test_default_right_after_financing_is_rejected(
    db: Session, orchestrator: FinancingOrchestrator, funded_pool, verified_invoice
):
    """Only the orchestrator clock decides whether grace is over"""
    orchestrator.finance(verified_invoice.id, "0xpayout")

    with pytest.raises(EligibilityRejectedError, match="runs until 2026-04-02"):
        orchestrator.mark_defaulted(verified_invoice.id)

    invoice = InvoiceRepository(db).get(verified_invoice.id)
    assert invoice.status is InvoiceStatus.FINANCED
    assert PoolRepository(db).get_or_create(orchestrator.pool_name).deployed_cents == 738_750


def test_default_requires_financed_invoice(orchestrator: FinancingOrchestrator, verified_invoice):
    with pytest.raises(InvalidStateTransitionError):
        later(orchestrator, date(2027, 1, 1)).mark_defaulted(verified_invoice.id)


def test_sweep_overdue_defaults_only_expired(orchestrator: FinancingOrchestrator, funded_pool, make_invoice):
    early = make_invoice(due_date=date(2026, 2, 15))
    late = make_invoice(due_date=date(2026, 4, 15))
    for invoice in (early, late):
        orchestrator.verify(invoice.id, assessment())
        orchestrator.finance(invoice.id, f"0xpayout-{invoice.invoice_number}")

    sweeper = later(orchestrator, date(2026, 3, 20))

    assert sweeper.sweep_overdue() == [early.id]
    assert sweeper.sweep_overdue() == []


def test_sweep_overdue_before_any_grace_ends(orchestrator: FinancingOrchestrator, funded_pool, verified_invoice):
    orchestrator.finance(verified_invoice.id, "0xpayout")

    assert orchestrator.sweep_overdue() == []


def test_cancel_pending_invoice(orchestrator: FinancingOrchestrator, make_invoice):
    invoice = make_invoice()

    assert orchestrator.cancel(invoice.id, invoice.business_id).status is InvoiceStatus.CANCELLED


def test_cancel_by_other_business_hidden(orchestrator: FinancingOrchestrator, make_invoice, missing_id):
    invoice = make_invoice()

    with pytest.raises(NotFoundError):
        orchestrator.cancel(invoice.id, missing_id)


def test_cancel_verified_invoice(orchestrator: FinancingOrchestrator, verified_invoice):
    with pytest.raises(InvalidStateTransitionError):
        orchestrator.cancel(verified_invoice.id, verified_invoice.business_id)


def test_quote_without_pool_writes_nothing(db: Session, orchestrator: FinancingOrchestrator):
    quote = orchestrator.get_quote(1_000_000, 50)

    assert quote.terms.advance_amount_cents == 738_750
    assert quote.is_eligible is False
    assert PoolRepository(db).get(orchestrator.pool_name) is None


def test_quote_against_funded_pool(orchestrator: FinancingOrchestrator, funded_pool):
    assert orchestrator.get_quote(1_000_000, 50).is_eligible is True

    low_risk = orchestrator.get_quote(1_000_000, 20)
    assert low_risk.is_eligible is True
    assert low_risk.meets_risk_floor is False
    assert low_risk.reasons == ["risk score 20 below minimum 30"]
