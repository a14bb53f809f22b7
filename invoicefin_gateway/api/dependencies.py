"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session
from invoicefin_gateway.infrastructure.clients.risk import RiskProviderClient
from invoicefin_gateway.infrastructure.clients.ledger import LedgerClient
from invoicefin_gateway.infrastructure.database.session import get_db
from invoicefin_gateway.services.financing import FinancingOrchestrator
from invoicefin_gateway.services.invoices import InvoiceService
from invoicefin_gateway.services.liquidity import LiquidityService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_risk_client() -> RiskProviderClient:
    """Provide risk provider client instance"""
    return RiskProviderClient()


def get_ledger_client() -> LedgerClient:
    """Provide Ledger webhook client instance"""
    return LedgerClient()


def get_orchestrator(db: Session = Depends(get_db)) -> FinancingOrchestrator:
    return FinancingOrchestrator(db)


def get_liquidity_service(db: Session = Depends(get_db)) -> LiquidityService:
    return LiquidityService(db)


def get_invoice_service(db: Session = Depends(get_db)) -> InvoiceService:
    return InvoiceService(db)
