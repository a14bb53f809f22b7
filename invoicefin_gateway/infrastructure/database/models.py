"""SQLAlchemy ORM models for businesses, invoices, the liquidity pool and funds transfers"""

import uuid
from sqlalchemy import (
    Column,
    String,
    BigInteger,
    Date,
    DateTime,
    Integer,
    ForeignKey,
    Numeric,
    Text,
    JSON,
    Uuid,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class BusinessRecord(Base):
    """Registered seller and its financing aggregates"""

    __tablename__ = "business"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    wallet_address = Column(String(64), nullable=False, unique=True, index=True)
    company_name = Column(Text, nullable=False)
    tax_id = Column(Text, nullable=False)
    industry = Column(Text, nullable=False)
    country = Column(Text, nullable=False)
    risk_score = Column(Integer, nullable=False, default=50)
    invoices_financed = Column(Integer, nullable=False, default=0)
    total_amount_financed_cents = Column(BigInteger, nullable=False, default=0)
    invoices_repaid = Column(Integer, nullable=False, default=0)
    invoices_defaulted = Column(Integer, nullable=False, default=0)
    repayment_rate = Column(Numeric(5, 2), nullable=False, default=100)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    invoices = relationship("InvoiceRecord", back_populates="business")


class InvoiceRecord(Base):
    """Invoice with its lifecycle status and financing outcome"""

    __tablename__ = "invoice"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("business.id"), nullable=False, index=True)
    invoice_number = Column(Text, nullable=False)
    buyer_name = Column(Text, nullable=False)
    buyer_email = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    amount_cents = Column(BigInteger, nullable=False)
    currency = Column(String(8), nullable=False, default="USD")
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(String(16), nullable=False, default="pending", index=True)
    risk_score = Column(Integer, nullable=True)
    ai_verification_result = Column(JSON, nullable=True)
    fraud_detection_result = Column(JSON, nullable=True)
    financed_amount_cents = Column(BigInteger, nullable=True)
    fee_amount_cents = Column(BigInteger, nullable=True)
    advance_rate = Column(Numeric(6, 4), nullable=True)
    financed_at = Column(DateTime(timezone=True), nullable=True)
    financing_tx_ref = Column(Text, nullable=True)
    repaid_at = Column(DateTime(timezone=True), nullable=True)
    repayment_tx_ref = Column(Text, nullable=True)
    defaulted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    business = relationship("BusinessRecord", back_populates="invoices")


class PoolRecord(Base):
    """Liquidity pool totals; one row per pool, locked for every mutation"""

    __tablename__ = "liquidity_pool"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(64), nullable=False, unique=True)
    total_shares = Column(BigInteger, nullable=False, default=0)
    balance_cents = Column(BigInteger, nullable=False, default=0)
    deployed_cents = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    positions = relationship("LiquidityPositionRecord", back_populates="pool")


class LiquidityPositionRecord(Base):
    """A depositor's shares in a pool"""

    __tablename__ = "liquidity_position"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    pool_id = Column(Uuid, ForeignKey("liquidity_pool.id"), nullable=False, index=True)
    wallet_address = Column(String(64), nullable=False, index=True)
    shares = Column(BigInteger, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="active")
    deposited_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    withdrawn_at = Column(DateTime(timezone=True), nullable=True)

    pool = relationship("PoolRecord", back_populates="positions")


class FundsTransferRecord(Base):
    """Provenance row for every pool funds movement"""

    __tablename__ = "funds_transfer"
    __table_args__ = (UniqueConstraint("invoice_id", "kind", name="uq_funds_transfer_invoice_kind"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    pool_id = Column(Uuid, ForeignKey("liquidity_pool.id"), nullable=False, index=True)
    kind = Column(String(16), nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    invoice_id = Column(Uuid, ForeignKey("invoice.id"), nullable=True, index=True)
    business_id = Column(Uuid, ForeignKey("business.id"), nullable=True, index=True)
    wallet_address = Column(String(64), nullable=True)
    external_tx_ref = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
