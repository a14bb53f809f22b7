"""Risk provider HTTP client for invoice risk assessment and fraud signals"""

import httpx
from typing import Any, Dict, Tuple
from invoicefin_gateway.domain.assessment import FraudSignal, RiskAssessment, parse_fraud_signal, parse_risk_assessment
from invoicefin_gateway.domain.exceptions import RiskProviderError
from invoicefin_gateway.domain.models import Business, Invoice
from invoicefin_gateway.config import settings
from invoicefin_gateway.infrastructure.observability.metrics import risk_provider_failures_counter


def invoice_payload(invoice: Invoice, business: Business) -> Dict[str, Any]:
    """Invoice and seller history as sent to the provider"""
    return {
        "invoice": {
            "invoiceNumber": invoice.invoice_number,
            "buyerName": invoice.buyer_name,
            "amountCents": invoice.amount_cents,
            "currency": invoice.currency,
            "issueDate": invoice.issue_date.isoformat(),
            "dueDate": invoice.due_date.isoformat(),
            "description": invoice.description,
        },
        "business": {
            "companyName": business.company_name,
            "industry": business.industry,
            "country": business.country,
            "riskScore": business.risk_score,
            "invoicesFinanced": business.invoices_financed,
            "repaymentRate": str(business.repayment_rate),
        },
    }


class RiskProviderClient:
    """Client for the external AI risk assessment service"""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.risk_api_base
        self.timeout = timeout or settings.http_timeout_seconds

    async def _post(self, client: httpx.AsyncClient, path: str, payload: Dict[str, Any]) -> Any:
        try:
            response = await client.post(f"{self.base_url}{path}", json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            risk_provider_failures_counter.inc()
            raise RiskProviderError(f"Risk provider timeout after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            risk_provider_failures_counter.inc()
            raise RiskProviderError(f"Risk provider error: {e.response.status_code}") from e
        except httpx.RequestError as e:
            risk_provider_failures_counter.inc()
            raise RiskProviderError(f"Risk provider unreachable: {e}") from e
        except ValueError as e:
            risk_provider_failures_counter.inc()
            raise RiskProviderError(f"Risk provider returned non-JSON body: {e}") from e

    async def assess(self, invoice: Invoice, business: Business) -> Tuple[RiskAssessment, FraudSignal]:
        """
        Fetch the risk verdict and advisory fraud signal for an invoice.

        Raises:
            RiskProviderError: On timeout, HTTP errors, or unreadable response
            InvalidInputError: Response is JSON but not a valid assessment
        """
        payload = invoice_payload(invoice, business)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            assessment = parse_risk_assessment(await self._post(client, "/assess", payload))
            fraud_signal = parse_fraud_signal(await self._post(client, "/fraud", payload))
        return assessment, fraud_signal
