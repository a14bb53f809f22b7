"""Business registration, dashboard and funds-transfer history endpoints"""

import uuid
from typing import List
from fastapi import APIRouter, Depends, Query

from invoicefin_gateway.api.dependencies import get_invoice_service
from invoicefin_gateway.api.v1.schemas import (
    BusinessCreateRequest,
    BusinessResponse,
    BusinessUpdateRequest,
    DashboardResponse,
    InvoiceResponse,
    TransferItem,
    TransfersResponse,
    WALLET_PATTERN,
)
from invoicefin_gateway.api.v1.invoices import invoice_response
from invoicefin_gateway.domain.models import Business
from invoicefin_gateway.services.invoices import InvoiceService

router = APIRouter()


def _business_response(business: Business) -> BusinessResponse:
    return BusinessResponse(
        id=business.id,
        wallet_address=business.wallet_address,
        company_name=business.company_name,
        industry=business.industry,
        country=business.country,
        risk_score=business.risk_score,
        invoices_financed=business.invoices_financed,
        total_amount_financed_cents=business.total_amount_financed_cents,
        invoices_repaid=business.invoices_repaid,
        invoices_defaulted=business.invoices_defaulted,
        repayment_rate=business.repayment_rate,
    )


@router.post("/businesses", response_model=BusinessResponse, status_code=201)
def register_business(
    request_body: BusinessCreateRequest,
    service: InvoiceService = Depends(get_invoice_service),
):
    business = service.register_business(
        wallet_address=request_body.wallet_address,
        company_name=request_body.company_name,
        tax_id=request_body.tax_id,
        industry=request_body.industry,
        country=request_body.country,
    )
    return _business_response(business)


@router.get("/businesses", response_model=BusinessResponse)
def get_business_by_wallet(
    wallet_address: str = Query(..., pattern=WALLET_PATTERN),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Find the business registered for a seller wallet"""
    return _business_response(service.get_business_by_wallet(wallet_address))


@router.get("/businesses/{business_id}", response_model=BusinessResponse)
def get_business(business_id: uuid.UUID, service: InvoiceService = Depends(get_invoice_service)):
    return _business_response(service.get_business(business_id))


@router.patch("/businesses/{business_id}", response_model=BusinessResponse)
def update_business(
    business_id: uuid.UUID,
    request_body: BusinessUpdateRequest,
    service: InvoiceService = Depends(get_invoice_service),
):
    """Edit profile fields; risk score and track record are read-only"""
    business = service.update_business(
        business_id,
        wallet_address=request_body.wallet_address,
        company_name=request_body.company_name,
        tax_id=request_body.tax_id,
        industry=request_body.industry,
        country=request_body.country,
    )
    return _business_response(business)


@router.get("/businesses/{business_id}/dashboard", response_model=DashboardResponse)
def get_dashboard(business_id: uuid.UUID, service: InvoiceService = Depends(get_invoice_service)):
    """Invoice counts and financed/repaid totals for one business"""
    stats = service.dashboard_stats(business_id)
    return DashboardResponse(
        total_invoices=stats.total_invoices,
        pending_invoices=stats.pending_invoices,
        financed_invoices=stats.financed_invoices,
        total_financed_cents=stats.total_financed_cents,
        total_repaid_cents=stats.total_repaid_cents,
    )


@router.get("/businesses/{business_id}/transfers", response_model=TransfersResponse)
def get_transfers(
    business_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=500),
    service: InvoiceService = Depends(get_invoice_service),
):
    """
    Funds movements tied to a business's invoices, newest first.

    Args:
        business_id: Business UUID
        limit: Maximum number of rows to return (default 50)
    """
    service.get_business(business_id)
    transfers = service.list_transfers(business_id, limit=limit)
    return TransfersResponse(
        business_id=business_id,
        transfers=[
            TransferItem(
                transfer_id=t.id,
                kind=t.kind,
                amount_cents=t.amount_cents,
                invoice_id=t.invoice_id,
                external_tx_ref=t.external_tx_ref,
                created_at=t.created_at.isoformat() if t.created_at else "",
            )
            for t in transfers
        ],
    )


@router.get("/businesses/{business_id}/invoices", response_model=List[InvoiceResponse])
def list_invoices(business_id: uuid.UUID, service: InvoiceService = Depends(get_invoice_service)):
    service.get_business(business_id)
    return [invoice_response(invoice) for invoice in service.list_invoices(business_id)]
