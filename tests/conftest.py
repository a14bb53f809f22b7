"""Pytest fixtures for testing"""

import pytest
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from invoicefin_gateway.api.main import create_app
from invoicefin_gateway.infrastructure.database.models import Base
from invoicefin_gateway.infrastructure.database.session import get_db
from invoicefin_gateway.domain.models import Business, Invoice
from invoicefin_gateway.services.financing import FinancingOrchestrator
from invoicefin_gateway.services.invoices import InvoiceService
from invoicefin_gateway.services.liquidity import LiquidityService
from invoicefin_gateway.services.unit_of_work import PoolLocks


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_POOL = "test-pool"
LP_WALLET = "0x" + "a" * 40
SELLER_WALLET = "0x" + "b" * 40
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

APPROVE = {"overallScore": 50, "recommendation": "approve", "reasoning": "clean history"}
FRAUD_CLEAR = {"isSuspicious": False, "riskLevel": "low", "riskScore": 5, "flags": [], "analysis": "none"}


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def locks() -> PoolLocks:
    """Fresh lock registry so tests never share lock state"""
    return PoolLocks()


@pytest.fixture
def orchestrator(db: Session, locks: PoolLocks) -> FinancingOrchestrator:
    return FinancingOrchestrator(db, locks=locks, pool_name=TEST_POOL, clock=lambda: NOW)


@pytest.fixture
def liquidity(db: Session, locks: PoolLocks) -> LiquidityService:
    return LiquidityService(db, locks=locks, pool_name=TEST_POOL, clock=lambda: NOW)


@pytest.fixture
def invoice_service(db: Session) -> InvoiceService:
    return InvoiceService(db)


@pytest.fixture
def business(invoice_service: InvoiceService) -> Business:
    """Registered seller with a neutral track record"""
    return invoice_service.register_business(
        wallet_address=SELLER_WALLET,
        company_name="Acme Supplies",
        tax_id="12-3456789",
        industry="wholesale",
        country="US",
    )


@pytest.fixture
def make_invoice(invoice_service: InvoiceService, business: Business) -> Callable[..., Invoice]:
    """Factory for pending invoices; $10,000.00 due in 30 days by default"""
    counter = iter(range(1, 10_000))

    def _make(amount_cents: int = 1_000_000, due_date: date | None = None) -> Invoice:
        issue_date = date(2026, 2, 1)
        return invoice_service.create_invoice(
            business_id=business.id,
            invoice_number=f"INV-{next(counter):04d}",
            buyer_name="Globex Corp",
            amount_cents=amount_cents,
            issue_date=issue_date,
            due_date=due_date or issue_date + timedelta(days=30),
        )

    return _make


@pytest.fixture
def funded_pool(liquidity: LiquidityService):
    """Pool holding $100,000.00 so a $10,000.00 invoice fits under the single-invoice cap"""
    return liquidity.deposit(LP_WALLET, 10_000_000).pool


@pytest.fixture
def verified_invoice(
    orchestrator: FinancingOrchestrator,
    make_invoice: Callable[..., Invoice],
) -> Invoice:
    """$10,000.00 invoice verified at risk score 50"""
    invoice = make_invoice()
    return orchestrator.verify(invoice.id, APPROVE, FRAUD_CLEAR)


@pytest.fixture
def missing_id() -> uuid.UUID:
    return uuid.uuid4()
