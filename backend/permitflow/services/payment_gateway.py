"""
Payment Gateway Client

Thin adapter over a Stripe-compatible checkout API (form-encoded, bearer
secret key). Creates hosted checkout sessions for an invoice and reads a
completed session back as a GatewayCallback for the payment tracker.

Amounts go over the wire in minor units (toea for PGK).
"""

import logging
from decimal import Decimal

import httpx

from permitflow.config import settings
from permitflow.errors import UpstreamError
from permitflow.services.fee_calculator import money
from permitflow.services.payment_tracker import GatewayCallback

logger = logging.getLogger(__name__)


def to_minor_units(amount) -> int:
    return int(money(amount) * 100)


def from_minor_units(value: int | None) -> Decimal:
    return money(Decimal(value or 0) / 100)


def checkout_line_items(invoice: dict) -> list[dict]:
    """Line items still owed on an invoice summary; a single balance line once partly paid."""
    if Decimal(invoice["amount_paid"]) > 0:
        return [{
            "name": f"Outstanding balance - {invoice['invoice_number']}",
            "amount": to_minor_units(invoice["outstanding_balance"]),
        }]
    return [
        {"name": f"{item['description']} ({item['form']})" if item.get("form") else item["description"],
         "amount": to_minor_units(item["amount"])}
        for item in invoice["line_items"]
        if Decimal(item["amount"]) > 0
    ]


class PaymentGateway:
    def __init__(
        self,
        base_url: str | None = None,
        secret_key: str | None = None,
        *,
        currency: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.payment_gateway_url).rstrip("/")
        self.secret_key = secret_key if secret_key is not None else settings.payment_gateway_secret_key
        self.currency = (currency or settings.payment_currency).lower()
        self.timeout = timeout or settings.http_timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        if not self.secret_key:
            raise UpstreamError("Payment gateway is not configured")
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.secret_key}"},
            timeout=self.timeout,
            transport=self._transport,
        )

    async def create_checkout_session(self, invoice: dict, success_url: str, cancel_url: str) -> dict:
        """Open a hosted checkout for the invoice's outstanding items. Returns {session_id, url}."""
        form: dict[str, str | int] = {
            "mode": "payment",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": invoice["application_id"],
            "metadata[invoice_id]": invoice["application_id"],
            "metadata[invoice_number]": invoice["invoice_number"],
        }
        for i, item in enumerate(checkout_line_items(invoice)):
            prefix = f"line_items[{i}]"
            form[f"{prefix}[quantity]"] = 1
            form[f"{prefix}[price_data][currency]"] = self.currency
            form[f"{prefix}[price_data][unit_amount]"] = item["amount"]
            form[f"{prefix}[price_data][product_data][name]"] = item["name"]

        data = await self._request("POST", "/checkout/sessions", data=form)
        logger.info("Checkout session %s opened for %s", data.get("id"), invoice["invoice_number"])
        return {"session_id": data.get("id"), "url": data.get("url")}

    async def retrieve_session(self, session_id: str) -> GatewayCallback:
        data = await self._request(
            "GET", f"/checkout/sessions/{session_id}",
            params={"expand[]": "payment_intent.latest_charge"},
        )
        metadata = data.get("metadata") or {}
        invoice_number = metadata.get("invoice_number")
        if not invoice_number:
            raise UpstreamError(f"Checkout session {session_id} carries no invoice number")

        receipt_url = None
        intent = data.get("payment_intent")
        if isinstance(intent, dict) and isinstance(intent.get("latest_charge"), dict):
            receipt_url = intent["latest_charge"].get("receipt_url")

        return GatewayCallback(
            session_id=data.get("id") or session_id,
            payment_status=data.get("payment_status") or "unpaid",
            amount_paid=from_minor_units(data.get("amount_total")),
            invoice_number=invoice_number,
            receipt_url=receipt_url,
        )

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            async with self._client() as client:
                resp = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("Payment gateway %s %s failed: %s", method, path, e)
            raise UpstreamError("Payment gateway unavailable; please try again") from e

        if resp.status_code >= 400:
            try:
                message = resp.json().get("error", {}).get("message")
            except ValueError:
                message = None
            logger.warning("Payment gateway %s %s returned %s: %s", method, path, resp.status_code, message)
            raise UpstreamError(
                f"Payment gateway rejected the request ({resp.status_code})",
                details={"gateway_message": message} if message else None,
            )
        return resp.json()
