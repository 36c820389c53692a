"""
Payment provider REST client.

This client handles:
- Customer lookup and creation
- Price, product, invoice and charge retrieval
- Subscription lookup, creation (license code redemption) and cancellation

The provider speaks a Stripe-style API: form-encoded request bodies,
JSON responses, bearer API key.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from entitlement_sync.integrations.payments.exceptions import (
    PaymentProviderAPIError,
    PaymentProviderAuthenticationError,
    PaymentProviderConnectionError,
    PaymentProviderNotFoundError,
    PaymentProviderRateLimitError,
)
from entitlement_sync.integrations.payments.models import (
    Charge,
    Customer,
    Invoice,
    Price,
    Product,
    Subscription,
)

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_BASE_URL = "https://api.stripe.com/v1"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0


class PaymentProviderClient:
    """
    Async client for the payment provider API.

    SECURITY: API key must be stored securely and never logged.
    """

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize payment provider client.

        Args:
            api_key: Secret API key
            base_url: API base URL (default: provider cloud URL)
            timeout: Request timeout in seconds
            connect_timeout: Connection timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        if not api_key:
            raise ValueError("Payment provider API key is required")

        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {api_key}",
            },
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "PaymentProviderClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make an HTTP request to the provider API.

        Raises:
            PaymentProviderError: On API errors
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        try:
            response = await self._client.request(
                method=method,
                url=url,
                data=data,
                params=params,
            )
        except httpx.TimeoutException as e:
            logger.error(
                "Payment provider timeout",
                extra={"endpoint": endpoint, "error": str(e)},
            )
            raise PaymentProviderConnectionError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            logger.error(
                "Payment provider connection error",
                extra={"endpoint": endpoint, "error": str(e)},
            )
            raise PaymentProviderConnectionError(f"Connection error: {e}") from e

        if response.status_code in (401, 403):
            logger.error(
                "Payment provider authentication failed",
                extra={"status_code": response.status_code, "endpoint": endpoint},
            )
            raise PaymentProviderAuthenticationError(status_code=response.status_code)

        if response.status_code == 404:
            raise PaymentProviderNotFoundError(f"Resource not found: {endpoint}", resource=endpoint)

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            logger.warning(
                "Payment provider rate limited",
                extra={"endpoint": endpoint, "retry_after": retry_after},
            )
            raise PaymentProviderRateLimitError(
                retry_after=int(retry_after) if retry_after else None
            )

        if response.status_code >= 400:
            try:
                error_body = response.json()
            except ValueError:
                error_body = {}

            logger.error(
                "Payment provider API error",
                extra={
                    "status_code": response.status_code,
                    "endpoint": endpoint,
                    "response": str(error_body)[:500],
                },
            )
            raise PaymentProviderAPIError(
                f"Payment provider API error: {response.status_code}",
                status_code=response.status_code,
                response=error_body,
            )

        if response.status_code == 204:
            return {}

        return response.json()

    async def get_customer(self, customer_id: str) -> Customer:
        data = await self._request("GET", f"/customers/{customer_id}")
        return Customer.from_dict(data)

    async def find_customer_by_email(self, email: str) -> Optional[Customer]:
        """
        Find the first customer with this email.

        Returns:
            Customer if one exists, None otherwise
        """
        data = await self._request("GET", "/customers", params={"email": email, "limit": 1})
        customers = data.get("data") or []
        return Customer.from_dict(customers[0]) if customers else None

    async def list_customers_by_email(self, email: str) -> List[Customer]:
        """Every live customer registered with this email."""
        data = await self._request("GET", "/customers", params={"email": email, "limit": 100})
        customers = [Customer.from_dict(item) for item in data.get("data") or []]
        return [customer for customer in customers if not customer.deleted]

    async def create_customer(self, email: str, name: Optional[str] = None) -> Customer:
        payload = {"email": email}
        if name:
            payload["name"] = name
        data = await self._request("POST", "/customers", data=payload)
        logger.info("Payment provider customer created", extra={"customer_id": data.get("id")})
        return Customer.from_dict(data)

    async def get_or_create_customer(self, email: str, name: Optional[str] = None) -> Customer:
        existing = await self.find_customer_by_email(email)
        if existing is not None and not existing.deleted:
            return existing
        return await self.create_customer(email, name)

    async def get_invoice(self, invoice_id: str) -> Invoice:
        data = await self._request(
            "GET",
            f"/invoices/{invoice_id}",
            params={"expand[]": "lines.data.price.product"},
        )
        return Invoice.from_dict(data)

    async def list_paid_invoices(self, customer_id: str, limit: int = 100) -> List[Invoice]:
        """Paid invoices of a customer, newest first, with line prices expanded."""
        data = await self._request(
            "GET",
            "/invoices",
            params={
                "customer": customer_id,
                "status": "paid",
                "limit": limit,
                "expand[]": "data.lines.data.price",
            },
        )
        return [Invoice.from_dict(item) for item in data.get("data") or []]

    async def get_charge(self, charge_id: str) -> Charge:
        data = await self._request("GET", f"/charges/{charge_id}")
        return Charge.from_dict(data)

    async def get_price(self, price_id: str) -> Price:
        data = await self._request("GET", f"/prices/{price_id}", params={"expand[]": "product"})
        return Price.from_dict(data)

    async def get_product(self, product_id: str) -> Product:
        data = await self._request("GET", f"/products/{product_id}")
        return Product.from_dict(data)

    async def get_subscription(self, subscription_id: str) -> Subscription:
        data = await self._request(
            "GET",
            f"/subscriptions/{subscription_id}",
            params={"expand[]": "items.data.price"},
        )
        return Subscription.from_dict(data)

    async def create_subscription(self, customer_id: str, price_id: str) -> Subscription:
        """
        Subscribe a customer to a price without collecting payment.

        Used for prepaid license codes.
        """
        data = await self._request(
            "POST",
            "/subscriptions",
            data={"customer": customer_id, "items[0][price]": price_id},
        )
        logger.info(
            "Payment provider subscription created",
            extra={"customer_id": customer_id, "price_id": price_id, "subscription_id": data.get("id")},
        )
        return Subscription.from_dict(data)

    async def subscribe(self, customer_id: str, price_id: str) -> Price:
        """
        Attach a price to a customer without collecting payment.

        Recurring prices become a subscription; one-time prices become an
        invoice marked as paid out of band.

        Returns:
            The price that was attached
        """
        price = await self.get_price(price_id)

        if price.is_recurring:
            await self.create_subscription(customer_id, price_id)
            return price

        await self._request(
            "POST",
            "/invoiceitems",
            data={"customer": customer_id, "price": price_id, "description": "One-time charge"},
        )
        invoice = await self._request(
            "POST",
            "/invoices",
            data={
                "customer": customer_id,
                "auto_advance": "false",
                "pending_invoice_items_behavior": "include",
            },
        )
        await self._request("POST", f"/invoices/{invoice['id']}/pay", data={"paid_out_of_band": "true"})
        logger.info(
            "One-time price paid out of band",
            extra={"customer_id": customer_id, "price_id": price_id, "invoice_id": invoice["id"]},
        )
        return price

    async def cancel_subscription(self, subscription_id: str) -> Subscription:
        """
        Cancel a subscription immediately.

        The provider then emits subscription.canceled, which downgrades the
        user through the usual path.
        """
        data = await self._request("DELETE", f"/subscriptions/{subscription_id}")
        logger.info("Payment provider subscription canceled", extra={"subscription_id": subscription_id})
        return Subscription.from_dict(data)
