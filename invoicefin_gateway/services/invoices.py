"""Business registration, invoice intake and seller-facing reporting"""

import uuid
from dataclasses import dataclass
from datetime import date
from typing import List, Optional
from sqlalchemy.orm import Session

from invoicefin_gateway.domain.exceptions import InvalidInputError, NotFoundError
from invoicefin_gateway.domain.models import Business, Invoice, InvoiceStatus
from invoicefin_gateway.infrastructure.database.models import FundsTransferRecord
from invoicefin_gateway.infrastructure.database.repositories import (
    BusinessRepository,
    InvoiceRepository,
    TransferRepository,
)
from invoicefin_gateway.services.unit_of_work import unit_of_work


@dataclass(frozen=True)
class DashboardStats:
    total_invoices: int
    pending_invoices: int
    financed_invoices: int
    total_financed_cents: int
    total_repaid_cents: int


class InvoiceService:
    """CRUD around businesses and invoices; no pool state is touched here"""

    def __init__(self, db: Session):
        self.db = db
        self.businesses = BusinessRepository(db)
        self.invoices = InvoiceRepository(db)
        self.transfers = TransferRepository(db)

    def register_business(
        self,
        wallet_address: str,
        company_name: str,
        tax_id: str,
        industry: str,
        country: str,
    ) -> Business:
        wallet_address = wallet_address.lower()
        with unit_of_work(self.db):
            if self.businesses.get_by_wallet(wallet_address) is not None:
                raise InvalidInputError(
                    f"Business already registered for {wallet_address}",
                    wallet_address=wallet_address,
                )
            return self.businesses.create_business(
                Business(
                    id=uuid.uuid4(),
                    wallet_address=wallet_address,
                    company_name=company_name,
                    tax_id=tax_id,
                    industry=industry,
                    country=country,
                )
            )

    def get_business(self, business_id: uuid.UUID) -> Business:
        business = self.businesses.get(business_id)
        if business is None:
            raise NotFoundError(f"Business {business_id} not found", business_id=str(business_id))
        return business

    def get_business_by_wallet(self, wallet_address: str) -> Business:
        wallet_address = wallet_address.lower()
        business = self.businesses.get_by_wallet(wallet_address)
        if business is None:
            raise NotFoundError(f"No business registered for {wallet_address}", wallet_address=wallet_address)
        return business

    def update_business(
        self,
        business_id: uuid.UUID,
        wallet_address: str,
        company_name: Optional[str] = None,
        tax_id: Optional[str] = None,
        industry: Optional[str] = None,
        country: Optional[str] = None,
    ) -> Business:
        """
        Edit a seller's profile; only the owning wallet may do so.

        Risk score, counts and repayment rate are not editable and move only
        with financing events.

        Raises:
            NotFoundError: business missing, or owned by another wallet
        """
        changes = {
            "company_name": company_name,
            "tax_id": tax_id,
            "industry": industry,
            "country": country,
        }
        with unit_of_work(self.db):
            business = self.businesses.get(business_id, for_update=True)
            if business is None or business.wallet_address != wallet_address.lower():
                # Not revealing another seller's business
                raise NotFoundError(f"Business {business_id} not found", business_id=str(business_id))

            for name, value in changes.items():
                if value is not None:
                    setattr(business, name, value)
            self.businesses.save_profile(business)
        return business

    def create_invoice(
        self,
        business_id: uuid.UUID,
        invoice_number: str,
        buyer_name: str,
        amount_cents: int,
        issue_date: date,
        due_date: date,
        currency: str = "USD",
        buyer_email: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Invoice:
        """
        Create a pending invoice for a registered business.

        Raises:
            InvalidInputError: non-positive amount or due date not after issue date
            NotFoundError: business does not exist
        """
        if amount_cents <= 0:
            raise InvalidInputError(f"invoice amount {amount_cents} must be positive", amount_cents=amount_cents)
        if due_date <= issue_date:
            raise InvalidInputError(
                f"due date {due_date.isoformat()} must be after issue date {issue_date.isoformat()}",
                issue_date=issue_date.isoformat(),
                due_date=due_date.isoformat(),
            )

        with unit_of_work(self.db):
            self.get_business(business_id)
            return self.invoices.create_invoice(
                Invoice(
                    id=uuid.uuid4(),
                    business_id=business_id,
                    invoice_number=invoice_number,
                    buyer_name=buyer_name,
                    buyer_email=buyer_email,
                    description=description,
                    amount_cents=amount_cents,
                    currency=currency,
                    issue_date=issue_date,
                    due_date=due_date,
                )
            )

    def get_invoice(self, invoice_id: uuid.UUID) -> Invoice:
        invoice = self.invoices.get(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found", invoice_id=str(invoice_id))
        return invoice

    def list_invoices(self, business_id: uuid.UUID) -> List[Invoice]:
        return self.invoices.get_invoices_by_business(business_id)

    def dashboard_stats(self, business_id: uuid.UUID) -> DashboardStats:
        self.get_business(business_id)
        invoices = self.invoices.get_invoices_by_business(business_id)

        pending = [i for i in invoices if i.status in (InvoiceStatus.PENDING, InvoiceStatus.VERIFIED)]
        financed = [i for i in invoices if i.status is InvoiceStatus.FINANCED]
        repaid = [i for i in invoices if i.status is InvoiceStatus.REPAID]

        return DashboardStats(
            total_invoices=len(invoices),
            pending_invoices=len(pending),
            financed_invoices=len(financed),
            total_financed_cents=sum(i.financed_amount_cents for i in financed),
            total_repaid_cents=sum(i.amount_cents for i in repaid),
        )

    def list_transfers(self, business_id: uuid.UUID, limit: int = 50) -> List[FundsTransferRecord]:
        return self.transfers.get_transfers_by_business(business_id, limit=limit)
