"""Payment link provider interface and the T-Pay implementation.

The booking manager only needs a redirect URL for an amount; everything about
the gateway lives behind PaymentLinkProvider.
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import httpx

from marketplace.core.config import PaymentProvider, get_settings

logger = logging.getLogger(__name__)


class PaymentLinkError(Exception):
    """The gateway did not return a payment link."""


@dataclass
class CustomerContact:
    email: str
    phone: Optional[str] = None
    name: Optional[str] = None


class PaymentLinkProvider(ABC):
    """Abstract interface for payment gateways."""

    method: str = "unknown"

    @abstractmethod
    async def create_payment_link(
        self,
        amount: Decimal,
        currency: str,
        description: str,
        reference_id: str,
        customer_contact: CustomerContact,
    ) -> str:
        """Create a payment and return the URL the renter is redirected to.

        Raises:
            PaymentLinkError: on network, auth or gateway failure
        """
        pass


class TPayPaymentLinkProvider(PaymentLinkProvider):
    """T-Pay Open API: OAuth client credentials, then a marketplace transaction."""

    method = "tpay"

    def __init__(
        self,
        base_url: str,
        client_id: str,
        secret: str,
        merchant_id: Optional[str] = None,
        pos_id: Optional[str] = None,
        webhook_url: Optional[str] = None,
        language_code: str = "PL",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.secret = secret
        self.merchant_id = merchant_id
        self.pos_id = pos_id
        self.webhook_url = webhook_url
        self.language_code = language_code
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _get_access_token(self, client: httpx.AsyncClient) -> str:
        response = await client.post(
            "/oauth/auth",
            data={
                "client_id": self.client_id,
                "client_secret": self.secret,
                "grant_type": "client_credentials",
            },
            headers={"Accept": "application/json"},
        )
        if response.status_code == 401:
            raise PaymentLinkError("Authentication failed - please check your API credentials")
        response.raise_for_status()
        token = response.json().get("access_token")
        if not token:
            raise PaymentLinkError("Failed to obtain access token")
        return token

    def _build_payload(
        self,
        amount: Decimal,
        currency: str,
        description: str,
        reference_id: str,
        customer_contact: CustomerContact,
    ) -> dict:
        value = float(amount.quantize(Decimal("0.01")))
        payload = {
            "currency": currency,
            "description": description[:128],
            "hiddenDescription": reference_id,
            "languageCode": self.language_code,
            "payer": {
                "email": customer_contact.email,
                "name": customer_contact.name or customer_contact.email,
                "phone": customer_contact.phone,
            },
            "childTransactions": [
                {
                    "amount": value,
                    "description": description[:128],
                    "merchant": {"id": self.merchant_id},
                    "products": [
                        {
                            "name": description[:128],
                            "externalId": reference_id,
                            "quantity": 1,
                            "unitPrice": value,
                        }
                    ],
                }
            ],
        }
        if self.pos_id:
            payload["pos"] = {"id": self.pos_id}
        if self.webhook_url:
            payload["transactionCallbacks"] = [{"type": 1, "value": self.webhook_url}]
        return payload

    async def create_payment_link(
        self,
        amount: Decimal,
        currency: str,
        description: str,
        reference_id: str,
        customer_contact: CustomerContact,
    ) -> str:
        if amount is None or amount <= 0 or not description:
            raise PaymentLinkError("Amount and description are required")

        try:
            async with self._client() as client:
                token = await self._get_access_token(client)
                response = await client.post(
                    "/marketplace/v1/transaction",
                    json=self._build_payload(
                        amount, currency, description, reference_id, customer_contact
                    ),
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Accept": "application/json",
                    },
                )
                if response.status_code == 400:
                    message = response.json().get("message") or "Invalid payment request"
                    raise PaymentLinkError(message)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"[PAYMENT] T-Pay request timed out for {reference_id}")
            raise PaymentLinkError("Payment provider timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"[PAYMENT] T-Pay request failed for {reference_id}: {e}")
            raise PaymentLinkError("Payment processing failed") from e
        except (ValueError, AttributeError, TypeError) as e:
            logger.error(f"[PAYMENT] T-Pay returned a malformed response for {reference_id}")
            raise PaymentLinkError("Invalid response from payment provider") from e

        if not isinstance(data, dict):
            logger.error(f"[PAYMENT] T-Pay returned a malformed response for {reference_id}")
            raise PaymentLinkError("Invalid response from payment provider")
        payment_url = data.get("paymentUrl") or data.get("transactionPaymentUrl")
        if not payment_url:
            raise PaymentLinkError("T-Pay did not return a payment URL")

        logger.info(f"[PAYMENT] T-Pay link created for {reference_id}")
        return payment_url


class UnconfiguredPaymentProvider(PaymentLinkProvider):
    """Stands in for a gateway whose credentials are missing.

    Bookings can still be read, confirmed and cancelled; only link creation
    fails, and it fails the way any gateway error does.
    """

    method = "unconfigured"

    def __init__(self, reason: str):
        self.reason = reason

    async def create_payment_link(
        self,
        amount: Decimal,
        currency: str,
        description: str,
        reference_id: str,
        customer_contact: CustomerContact,
    ) -> str:
        raise PaymentLinkError(self.reason)


def verify_tpay_checksum(
    merchant_id: str,
    transaction_id: str,
    amount: str,
    crc: str,
    md5sum: str,
    api_key: str,
) -> bool:
    """Verify the md5sum sent with a T-Pay notification."""
    expected = hashlib.md5(
        f"{merchant_id}{transaction_id}{amount}{crc}{api_key}".encode("utf-8")
    ).hexdigest()
    return expected == (md5sum or "").lower()


def get_payment_provider() -> PaymentLinkProvider:
    """Get the configured payment link provider."""
    settings = get_settings()
    if settings.payment_provider == PaymentProvider.TPAY:
        if not settings.tpay_configured:
            logger.warning("[PAYMENT] TPAY_CLIENT_ID and TPAY_SECRET are not set; payment links are disabled")
            return UnconfiguredPaymentProvider("Payment provider is not configured")
        return TPayPaymentLinkProvider(
            base_url=settings.tpay_base_url,
            client_id=settings.tpay_client_id,
            secret=settings.tpay_secret,
            merchant_id=settings.tpay_merchant_id,
            pos_id=settings.tpay_pos_id,
            webhook_url=settings.tpay_webhook_url,
            language_code=settings.tpay_language_code,
            timeout=settings.payment_timeout_seconds,
        )
    raise ValueError(f"Unsupported payment provider: {settings.payment_provider}")
