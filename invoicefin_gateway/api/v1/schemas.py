"""Pydantic schemas for API request/response validation"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from invoicefin_gateway.domain.models import InvoiceStatus, PositionStatus

WALLET_PATTERN = r"^0x[a-fA-F0-9]{40}$"


class BusinessCreateRequest(BaseModel):
    """Request body for POST /v1/businesses"""

    wallet_address: str = Field(..., pattern=WALLET_PATTERN, description="Seller wallet address")
    company_name: str = Field(..., min_length=1)
    tax_id: str = Field(..., min_length=1)
    industry: str = Field(..., min_length=1)
    country: str = Field(..., min_length=2)


class BusinessUpdateRequest(BaseModel):
    """
    Request body for PATCH /v1/businesses/{id}.

    wallet_address identifies the owner; omitted profile fields are left as-is.
    """

    wallet_address: str = Field(..., pattern=WALLET_PATTERN)
    company_name: Optional[str] = Field(None, min_length=1)
    tax_id: Optional[str] = Field(None, min_length=1)
    industry: Optional[str] = Field(None, min_length=1)
    country: Optional[str] = Field(None, min_length=2)


class BusinessResponse(BaseModel):
    id: uuid.UUID
    wallet_address: str
    company_name: str
    industry: str
    country: str
    risk_score: int
    invoices_financed: int
    total_amount_financed_cents: int
    invoices_repaid: int
    invoices_defaulted: int
    repayment_rate: Decimal


class DashboardResponse(BaseModel):
    """Response for GET /v1/businesses/{id}/dashboard"""

    total_invoices: int
    pending_invoices: int
    financed_invoices: int
    total_financed_cents: int
    total_repaid_cents: int


class InvoiceCreateRequest(BaseModel):
    """Request body for POST /v1/invoices"""

    business_id: uuid.UUID
    invoice_number: str = Field(..., min_length=1)
    buyer_name: str = Field(..., min_length=1)
    buyer_email: Optional[str] = None
    amount_cents: int = Field(..., gt=0, description="Face value in cents")
    currency: str = Field("USD", min_length=3, max_length=8)
    issue_date: date
    due_date: date
    description: Optional[str] = None


class InvoiceResponse(BaseModel):
    id: uuid.UUID
    business_id: uuid.UUID
    invoice_number: str
    buyer_name: str
    amount_cents: int
    currency: str
    issue_date: date
    due_date: date
    status: InvoiceStatus
    risk_score: Optional[int] = None
    fraud_detection_result: Optional[Dict[str, Any]] = None
    financed_amount_cents: Optional[int] = None
    fee_amount_cents: Optional[int] = None
    required_repayment_cents: Optional[int] = None
    financed_at: Optional[datetime] = None
    financing_tx_ref: Optional[str] = None
    repaid_at: Optional[datetime] = None
    repayment_tx_ref: Optional[str] = None
    defaulted_at: Optional[datetime] = None


class VerifyRequest(BaseModel):
    """
    Optional body for POST /v1/invoices/{id}/verify.

    When an analyst supplies the assessment it is used as-is; otherwise the
    risk provider is called.
    """

    assessment: Optional[Dict[str, Any]] = None
    fraud_signal: Optional[Dict[str, Any]] = None


class FinanceRequest(BaseModel):
    external_tx_ref: str = Field(..., min_length=1, description="Transaction hash of the advance payout")


class FinanceResponse(BaseModel):
    invoice: InvoiceResponse
    advance_amount_cents: int
    fee_amount_cents: int
    advance_rate_pct: int
    pool_balance_cents: int


class RepayRequest(BaseModel):
    amount_cents: int = Field(..., gt=0)
    external_tx_ref: Optional[str] = None


class CancelRequest(BaseModel):
    business_id: uuid.UUID


class QuoteRequest(BaseModel):
    """Request body for POST /v1/quote"""

    face_value_cents: int = Field(..., gt=0)
    risk_score: int = Field(..., ge=0, le=100)


class QuoteResponse(BaseModel):
    advance_amount_cents: int
    advance_rate_pct: int
    fee_amount_cents: int
    gross_advance_cents: int
    is_eligible: bool
    meets_risk_floor: bool
    reasons: List[str]


class PoolStatsResponse(BaseModel):
    """Response for GET /v1/pool"""

    total_shares: int
    balance_cents: int
    deployed_cents: int
    price_per_share: Decimal
    utilization_rate: Decimal
    apy: Decimal


class DepositRequest(BaseModel):
    wallet_address: str = Field(..., pattern=WALLET_PATTERN)
    amount_cents: int = Field(..., gt=0)
    external_tx_ref: Optional[str] = None


class DepositResponse(BaseModel):
    position_id: uuid.UUID
    shares_minted: int
    position_shares: int
    pool_total_shares: int
    pool_balance_cents: int


class WithdrawRequest(BaseModel):
    wallet_address: str = Field(..., pattern=WALLET_PATTERN)
    shares: Optional[int] = Field(None, gt=0, description="Shares to burn; omit to redeem everything")
    external_tx_ref: Optional[str] = None


class WithdrawResponse(BaseModel):
    position_id: uuid.UUID
    amount_cents: int
    shares_burned: int
    position_status: PositionStatus
    remaining_shares: int


class PositionItem(BaseModel):
    position_id: uuid.UUID
    shares: int
    status: PositionStatus
    redeemable_cents: int
    deposited_at: Optional[datetime] = None
    withdrawn_at: Optional[datetime] = None


class PositionsResponse(BaseModel):
    wallet_address: str
    positions: List[PositionItem]


class TransferItem(BaseModel):
    transfer_id: uuid.UUID
    kind: str
    amount_cents: int
    invoice_id: Optional[uuid.UUID] = None
    external_tx_ref: Optional[str] = None
    created_at: str


class TransfersResponse(BaseModel):
    """Response for GET /v1/businesses/{id}/transfers"""

    business_id: uuid.UUID
    transfers: List[TransferItem]


class SweepResponse(BaseModel):
    """Response for POST /v1/invoices/sweep-overdue"""

    as_of: date
    defaulted_invoice_ids: List[uuid.UUID]
