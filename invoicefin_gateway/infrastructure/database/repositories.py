"""Data access layer mapping ORM records to domain entities"""

import uuid
from datetime import date
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from invoicefin_gateway.infrastructure.database.models import (
    BusinessRecord,
    FundsTransferRecord,
    InvoiceRecord,
    LiquidityPositionRecord,
    PoolRecord,
)
from invoicefin_gateway.domain.models import (
    Business,
    Invoice,
    InvoiceStatus,
    LiquidityPosition,
    Pool,
    PositionStatus,
    TransferKind,
)

_INVOICE_MUTABLE_FIELDS = (
    "risk_score",
    "ai_verification_result",
    "fraud_detection_result",
    "financed_amount_cents",
    "fee_amount_cents",
    "advance_rate",
    "financed_at",
    "financing_tx_ref",
    "repaid_at",
    "repayment_tx_ref",
    "defaulted_at",
)

_BUSINESS_AGGREGATE_FIELDS = (
    "risk_score",
    "invoices_financed",
    "total_amount_financed_cents",
    "invoices_repaid",
    "invoices_defaulted",
    "repayment_rate",
)

_BUSINESS_PROFILE_FIELDS = ("company_name", "tax_id", "industry", "country")


def _to_invoice(record: InvoiceRecord) -> Invoice:
    return Invoice(
        id=record.id,
        business_id=record.business_id,
        invoice_number=record.invoice_number,
        buyer_name=record.buyer_name,
        buyer_email=record.buyer_email,
        description=record.description,
        amount_cents=record.amount_cents,
        currency=record.currency,
        issue_date=record.issue_date,
        due_date=record.due_date,
        status=InvoiceStatus(record.status),
        risk_score=record.risk_score,
        ai_verification_result=record.ai_verification_result,
        fraud_detection_result=record.fraud_detection_result,
        financed_amount_cents=record.financed_amount_cents,
        fee_amount_cents=record.fee_amount_cents,
        advance_rate=Decimal(record.advance_rate) if record.advance_rate is not None else None,
        financed_at=record.financed_at,
        financing_tx_ref=record.financing_tx_ref,
        repaid_at=record.repaid_at,
        repayment_tx_ref=record.repayment_tx_ref,
        defaulted_at=record.defaulted_at,
    )


def _to_business(record: BusinessRecord) -> Business:
    return Business(
        id=record.id,
        wallet_address=record.wallet_address,
        company_name=record.company_name,
        tax_id=record.tax_id,
        industry=record.industry,
        country=record.country,
        risk_score=record.risk_score,
        invoices_financed=record.invoices_financed,
        total_amount_financed_cents=record.total_amount_financed_cents,
        invoices_repaid=record.invoices_repaid,
        invoices_defaulted=record.invoices_defaulted,
        repayment_rate=Decimal(record.repayment_rate),
    )


def _to_pool(record: PoolRecord) -> Pool:
    return Pool(
        id=record.id,
        name=record.name,
        total_shares=record.total_shares,
        balance_cents=record.balance_cents,
        deployed_cents=record.deployed_cents,
    )


def _to_position(record: LiquidityPositionRecord) -> LiquidityPosition:
    return LiquidityPosition(
        id=record.id,
        pool_id=record.pool_id,
        wallet_address=record.wallet_address,
        shares=record.shares,
        status=PositionStatus(record.status),
        deposited_at=record.deposited_at,
        withdrawn_at=record.withdrawn_at,
    )


class BusinessRepository:
    """Repository for registered businesses"""

    def __init__(self, db: Session):
        self.db = db

    def create_business(self, business: Business) -> Business:
        db_business = BusinessRecord(
            id=business.id,
            wallet_address=business.wallet_address,
            company_name=business.company_name,
            tax_id=business.tax_id,
            industry=business.industry,
            country=business.country,
            risk_score=business.risk_score,
            repayment_rate=business.repayment_rate,
        )
        self.db.add(db_business)
        self.db.flush()
        return _to_business(db_business)

    def get(self, business_id: uuid.UUID, for_update: bool = False) -> Optional[Business]:
        query = self.db.query(BusinessRecord).filter(BusinessRecord.id == business_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        record = query.first()
        return _to_business(record) if record else None

    def get_by_wallet(self, wallet_address: str) -> Optional[Business]:
        record = (
            self.db.query(BusinessRecord)
            .filter(BusinessRecord.wallet_address == wallet_address)
            .first()
        )
        return _to_business(record) if record else None

    def save(self, business: Business) -> None:
        """Write derived aggregates back; identity fields are immutable here"""
        record = self.db.get(BusinessRecord, business.id)
        for name in _BUSINESS_AGGREGATE_FIELDS:
            setattr(record, name, getattr(business, name))
        self.db.flush()

    def save_profile(self, business: Business) -> None:
        """Write seller-editable profile fields; aggregates and wallet are untouched"""
        record = self.db.get(BusinessRecord, business.id)
        for name in _BUSINESS_PROFILE_FIELDS:
            setattr(record, name, getattr(business, name))
        self.db.flush()


class InvoiceRepository:
    """Repository for invoices"""

    def __init__(self, db: Session):
        self.db = db

    def create_invoice(self, invoice: Invoice) -> Invoice:
        db_invoice = InvoiceRecord(
            id=invoice.id,
            business_id=invoice.business_id,
            invoice_number=invoice.invoice_number,
            buyer_name=invoice.buyer_name,
            buyer_email=invoice.buyer_email,
            description=invoice.description,
            amount_cents=invoice.amount_cents,
            currency=invoice.currency,
            issue_date=invoice.issue_date,
            due_date=invoice.due_date,
            status=invoice.status.value,
        )
        self.db.add(db_invoice)
        self.db.flush()
        return _to_invoice(db_invoice)

    def get(self, invoice_id: uuid.UUID, for_update: bool = False) -> Optional[Invoice]:
        """Fetch an invoice; for_update takes a row lock until the transaction ends"""
        query = self.db.query(InvoiceRecord).filter(InvoiceRecord.id == invoice_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        record = query.first()
        return _to_invoice(record) if record else None

    def save(self, invoice: Invoice) -> None:
        record = self.db.get(InvoiceRecord, invoice.id)
        record.status = invoice.status.value
        for name in _INVOICE_MUTABLE_FIELDS:
            setattr(record, name, getattr(invoice, name))
        self.db.flush()

    def get_invoices_by_business(self, business_id: uuid.UUID) -> List[Invoice]:
        records = (
            self.db.query(InvoiceRecord)
            .filter(InvoiceRecord.business_id == business_id)
            .order_by(InvoiceRecord.created_at.desc())
            .all()
        )
        return [_to_invoice(r) for r in records]

    def get_overdue_financed_ids(self, due_before: date) -> List[uuid.UUID]:
        """Financed invoices whose due date is strictly before the given date"""
        rows = (
            self.db.query(InvoiceRecord.id)
            .filter(InvoiceRecord.status == InvoiceStatus.FINANCED.value)
            .filter(InvoiceRecord.due_date < due_before)
            .order_by(InvoiceRecord.due_date)
            .all()
        )
        return [row[0] for row in rows]


class PoolRepository:
    """Repository for the pool row and its depositor positions"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, name: str) -> Optional[Pool]:
        record = self.db.query(PoolRecord).filter(PoolRecord.name == name).first()
        return _to_pool(record) if record else None

    def get_or_create(self, name: str, for_update: bool = False) -> Pool:
        query = self.db.query(PoolRecord).filter(PoolRecord.name == name)
        if for_update:
            query = query.with_for_update().populate_existing()
        record = query.first()
        if record is None:
            record = PoolRecord(name=name, total_shares=0, balance_cents=0, deployed_cents=0)
            self.db.add(record)
            self.db.flush()
        return _to_pool(record)

    def save(self, pool: Pool) -> None:
        record = self.db.get(PoolRecord, pool.id)
        record.total_shares = pool.total_shares
        record.balance_cents = pool.balance_cents
        record.deployed_cents = pool.deployed_cents
        self.db.flush()

    def get_active_position(self, pool_id: uuid.UUID, wallet_address: str) -> Optional[LiquidityPosition]:
        record = (
            self.db.query(LiquidityPositionRecord)
            .filter(LiquidityPositionRecord.pool_id == pool_id)
            .filter(LiquidityPositionRecord.wallet_address == wallet_address)
            .filter(LiquidityPositionRecord.status == PositionStatus.ACTIVE.value)
            .first()
        )
        return _to_position(record) if record else None

    def add_position(self, position: LiquidityPosition) -> LiquidityPosition:
        record = LiquidityPositionRecord(
            id=position.id,
            pool_id=position.pool_id,
            wallet_address=position.wallet_address,
            shares=position.shares,
            status=position.status.value,
        )
        self.db.add(record)
        self.db.flush()
        return _to_position(record)

    def save_position(self, position: LiquidityPosition) -> None:
        record = self.db.get(LiquidityPositionRecord, position.id)
        record.shares = position.shares
        record.status = position.status.value
        record.withdrawn_at = position.withdrawn_at
        self.db.flush()

    def get_positions_by_wallet(self, wallet_address: str) -> List[LiquidityPosition]:
        records = (
            self.db.query(LiquidityPositionRecord)
            .filter(LiquidityPositionRecord.wallet_address == wallet_address)
            .order_by(LiquidityPositionRecord.deposited_at.desc())
            .all()
        )
        return [_to_position(r) for r in records]

    def sum_active_shares(self, pool_id: uuid.UUID) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(LiquidityPositionRecord.shares), 0))
            .filter(LiquidityPositionRecord.pool_id == pool_id)
            .filter(LiquidityPositionRecord.status == PositionStatus.ACTIVE.value)
            .scalar()
        )
        return int(total)


class TransferRepository:
    """Append-only record of pool funds movements"""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        pool_id: uuid.UUID,
        kind: TransferKind,
        amount_cents: int,
        invoice_id: Optional[uuid.UUID] = None,
        business_id: Optional[uuid.UUID] = None,
        wallet_address: Optional[str] = None,
        external_tx_ref: Optional[str] = None,
    ) -> FundsTransferRecord:
        db_transfer = FundsTransferRecord(
            pool_id=pool_id,
            kind=kind.value,
            amount_cents=amount_cents,
            invoice_id=invoice_id,
            business_id=business_id,
            wallet_address=wallet_address,
            external_tx_ref=external_tx_ref,
        )
        self.db.add(db_transfer)
        self.db.flush()
        return db_transfer

    def get_transfers_by_business(self, business_id: uuid.UUID, limit: int = 50) -> List[FundsTransferRecord]:
        return (
            self.db.query(FundsTransferRecord)
            .filter(FundsTransferRecord.business_id == business_id)
            .order_by(FundsTransferRecord.created_at.desc())
            .limit(limit)
            .all()
        )

    def get_transfers_by_invoice(self, invoice_id: uuid.UUID) -> List[FundsTransferRecord]:
        return (
            self.db.query(FundsTransferRecord)
            .filter(FundsTransferRecord.invoice_id == invoice_id)
            .order_by(FundsTransferRecord.created_at)
            .all()
        )
