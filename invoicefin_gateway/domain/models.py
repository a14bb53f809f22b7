"""Domain models - pure Python dataclasses representing business entities"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status"""

    PENDING = "pending"
    VERIFIED = "verified"
    FINANCED = "financed"
    REPAID = "repaid"
    DEFAULTED = "defaulted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class PositionStatus(str, Enum):
    ACTIVE = "active"
    WITHDRAWN = "withdrawn"


class TransferKind(str, Enum):
    """Kinds of pool funds movement"""

    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    FINANCE = "finance"
    REPAY = "repay"
    WRITE_OFF = "write_off"


@dataclass
class Invoice:
    """A single financeable claim owned by one business"""

    id: uuid.UUID
    business_id: uuid.UUID
    invoice_number: str
    buyer_name: str
    amount_cents: int
    issue_date: date
    due_date: date
    currency: str = "USD"
    buyer_email: Optional[str] = None
    description: Optional[str] = None
    status: InvoiceStatus = InvoiceStatus.PENDING
    risk_score: Optional[int] = None
    ai_verification_result: Optional[Dict[str, Any]] = None
    fraud_detection_result: Optional[Dict[str, Any]] = None
    financed_amount_cents: Optional[int] = None
    fee_amount_cents: Optional[int] = None
    advance_rate: Optional[Decimal] = None
    financed_at: Optional[datetime] = None
    financing_tx_ref: Optional[str] = None
    repaid_at: Optional[datetime] = None
    repayment_tx_ref: Optional[str] = None
    defaulted_at: Optional[datetime] = None

    @property
    def required_repayment_cents(self) -> Optional[int]:
        """Full settlement amount: advance paid out plus the platform fee"""
        if self.financed_amount_cents is None:
            return None
        return self.financed_amount_cents + (self.fee_amount_cents or 0)


@dataclass
class Business:
    """Financing counterparty (the invoice seller)"""

    id: uuid.UUID
    wallet_address: str
    company_name: str
    tax_id: str
    industry: str
    country: str
    risk_score: int = 50
    invoices_financed: int = 0
    total_amount_financed_cents: int = 0
    invoices_repaid: int = 0
    invoices_defaulted: int = 0
    repayment_rate: Decimal = Decimal("100")


@dataclass
class Pool:
    """Pooled liquidity shared by all depositors"""

    id: uuid.UUID
    name: str
    total_shares: int = 0
    balance_cents: int = 0
    deployed_cents: int = 0  # capital out on financed invoices


@dataclass
class LiquidityPosition:
    """One depositor's stake in the pool"""

    id: uuid.UUID
    pool_id: uuid.UUID
    wallet_address: str
    shares: int = 0
    status: PositionStatus = PositionStatus.ACTIVE
    deposited_at: Optional[datetime] = None
    withdrawn_at: Optional[datetime] = None


@dataclass(frozen=True)
class FinancingTerms:
    """Output of the financing terms calculator"""

    advance_amount_cents: int
    advance_rate: Decimal  # unrounded, used for all amount math
    advance_rate_pct: int  # whole percent, display only
    fee_amount_cents: int
    gross_advance_cents: int


@dataclass(frozen=True)
class FinancingQuote:
    """Read-only preview of terms and pool eligibility"""

    terms: FinancingTerms
    is_eligible: bool
    meets_risk_floor: bool
    reasons: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PoolStats:
    total_shares: int
    balance_cents: int
    deployed_cents: int
    price_per_share: Decimal
    utilization_rate: Decimal
    apy: Decimal
