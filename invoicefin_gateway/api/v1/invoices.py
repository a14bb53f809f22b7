"""Invoice intake, verification, financing, repayment and quoting endpoints"""

import logging
import uuid
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from starlette.concurrency import run_in_threadpool

from invoicefin_gateway.api.dependencies import (
    get_invoice_service,
    get_ledger_client,
    get_orchestrator,
    get_request_id,
    get_risk_client,
)
from invoicefin_gateway.api.v1.schemas import (
    CancelRequest,
    FinanceRequest,
    FinanceResponse,
    InvoiceCreateRequest,
    InvoiceResponse,
    QuoteRequest,
    QuoteResponse,
    RepayRequest,
    SweepResponse,
    VerifyRequest,
)
from invoicefin_gateway.domain.models import Invoice
from invoicefin_gateway.infrastructure.clients.ledger import LedgerClient
from invoicefin_gateway.infrastructure.clients.risk import RiskProviderClient
from invoicefin_gateway.services.financing import FinancingOrchestrator
from invoicefin_gateway.services.invoices import InvoiceService

router = APIRouter()


def invoice_response(invoice: Invoice) -> InvoiceResponse:
    return InvoiceResponse(
        id=invoice.id,
        business_id=invoice.business_id,
        invoice_number=invoice.invoice_number,
        buyer_name=invoice.buyer_name,
        amount_cents=invoice.amount_cents,
        currency=invoice.currency,
        issue_date=invoice.issue_date,
        due_date=invoice.due_date,
        status=invoice.status,
        risk_score=invoice.risk_score,
        fraud_detection_result=invoice.fraud_detection_result,
        financed_amount_cents=invoice.financed_amount_cents,
        fee_amount_cents=invoice.fee_amount_cents,
        required_repayment_cents=invoice.required_repayment_cents,
        financed_at=invoice.financed_at,
        financing_tx_ref=invoice.financing_tx_ref,
        repaid_at=invoice.repaid_at,
        repayment_tx_ref=invoice.repayment_tx_ref,
        defaulted_at=invoice.defaulted_at,
    )


@router.post("/invoices", response_model=InvoiceResponse, status_code=201)
def create_invoice(
    request_body: InvoiceCreateRequest,
    service: InvoiceService = Depends(get_invoice_service),
):
    """Submit a new invoice; it starts pending until verified"""
    invoice = service.create_invoice(
        business_id=request_body.business_id,
        invoice_number=request_body.invoice_number,
        buyer_name=request_body.buyer_name,
        buyer_email=request_body.buyer_email,
        amount_cents=request_body.amount_cents,
        currency=request_body.currency,
        issue_date=request_body.issue_date,
        due_date=request_body.due_date,
        description=request_body.description,
    )
    return invoice_response(invoice)


@router.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(invoice_id: uuid.UUID, service: InvoiceService = Depends(get_invoice_service)):
    return invoice_response(service.get_invoice(invoice_id))


@router.post("/invoices/{invoice_id}/verify", response_model=InvoiceResponse)
async def verify_invoice(
    invoice_id: uuid.UUID,
    request: Request,
    request_body: VerifyRequest | None = None,
    service: InvoiceService = Depends(get_invoice_service),
    orchestrator: FinancingOrchestrator = Depends(get_orchestrator),
    risk_client: RiskProviderClient = Depends(get_risk_client),
):
    """
    Score a pending invoice and move it to verified or rejected.

    Flow:
    1. Use the analyst-supplied assessment, or fetch one from the risk provider
    2. Validate payload shape and score range
    3. Apply the verdict through the lifecycle state machine
    """
    request_id = get_request_id(request)

    if request_body is not None and request_body.assessment is not None:
        assessment, fraud_signal = request_body.assessment, request_body.fraud_signal
    else:
        invoice = await run_in_threadpool(service.get_invoice, invoice_id)
        business = await run_in_threadpool(service.get_business, invoice.business_id)
        assessment, fraud_signal = await risk_client.assess(invoice, business)

    logging.info("Applying risk assessment", extra={"request_id": request_id, "invoice_id": str(invoice_id)})
    invoice = await run_in_threadpool(orchestrator.verify, invoice_id, assessment, fraud_signal)
    return invoice_response(invoice)


@router.post("/invoices/{invoice_id}/finance", response_model=FinanceResponse)
def finance_invoice(
    invoice_id: uuid.UUID,
    request_body: FinanceRequest,
    background_tasks: BackgroundTasks,
    orchestrator: FinancingOrchestrator = Depends(get_orchestrator),
    ledger_client: LedgerClient = Depends(get_ledger_client),
):
    """
    Finance a verified invoice from the liquidity pool.

    Retrying after a timeout is safe: a second call fails with 409
    already-processed instead of paying out twice.
    """
    result = orchestrator.finance(invoice_id, request_body.external_tx_ref)

    background_tasks.add_task(
        ledger_client.send_event,
        "INVOICE_FINANCED",
        {
            "invoice_id": str(invoice_id),
            "business_id": str(result.invoice.business_id),
            "amount_cents": result.terms.advance_amount_cents,
            "fee_cents": result.terms.fee_amount_cents,
            "tx_ref": request_body.external_tx_ref,
        },
    )

    return FinanceResponse(
        invoice=invoice_response(result.invoice),
        advance_amount_cents=result.terms.advance_amount_cents,
        fee_amount_cents=result.terms.fee_amount_cents,
        advance_rate_pct=result.terms.advance_rate_pct,
        pool_balance_cents=result.pool.balance_cents,
    )


@router.post("/invoices/{invoice_id}/repay", response_model=InvoiceResponse)
def repay_invoice(
    invoice_id: uuid.UUID,
    request_body: RepayRequest,
    background_tasks: BackgroundTasks,
    orchestrator: FinancingOrchestrator = Depends(get_orchestrator),
    ledger_client: LedgerClient = Depends(get_ledger_client),
):
    """Record full buyer settlement (advance plus fee) and return funds to the pool"""
    result = orchestrator.repay(invoice_id, request_body.amount_cents, request_body.external_tx_ref)

    background_tasks.add_task(
        ledger_client.send_event,
        "INVOICE_REPAID",
        {
            "invoice_id": str(invoice_id),
            "amount_cents": request_body.amount_cents,
            "tx_ref": request_body.external_tx_ref,
        },
    )
    return invoice_response(result.invoice)


@router.post("/invoices/{invoice_id}/cancel", response_model=InvoiceResponse)
def cancel_invoice(
    invoice_id: uuid.UUID,
    request_body: CancelRequest,
    orchestrator: FinancingOrchestrator = Depends(get_orchestrator),
):
    return invoice_response(orchestrator.cancel(invoice_id, request_body.business_id))


@router.post("/invoices/{invoice_id}/default", response_model=InvoiceResponse)
def default_invoice(invoice_id: uuid.UUID, orchestrator: FinancingOrchestrator = Depends(get_orchestrator)):
    """Mark a financed invoice defaulted once its grace period has passed on the server clock"""
    return invoice_response(orchestrator.mark_defaulted(invoice_id).invoice)


@router.post("/invoices/sweep-overdue", response_model=SweepResponse)
def sweep_overdue(orchestrator: FinancingOrchestrator = Depends(get_orchestrator)):
    """Default every financed invoice whose grace period has ended as of today"""
    as_of = orchestrator.clock().date()
    return SweepResponse(as_of=as_of, defaulted_invoice_ids=orchestrator.sweep_overdue())


@router.post("/quote", response_model=QuoteResponse)
def get_quote(request_body: QuoteRequest, orchestrator: FinancingOrchestrator = Depends(get_orchestrator)):
    """Preview financing terms and pool eligibility without committing anything"""
    quote = orchestrator.get_quote(request_body.face_value_cents, request_body.risk_score)
    return QuoteResponse(
        advance_amount_cents=quote.terms.advance_amount_cents,
        advance_rate_pct=quote.terms.advance_rate_pct,
        fee_amount_cents=quote.terms.fee_amount_cents,
        gross_advance_cents=quote.terms.gross_advance_cents,
        is_eligible=quote.is_eligible,
        meets_risk_floor=quote.meets_risk_floor,
        reasons=quote.reasons,
    )
