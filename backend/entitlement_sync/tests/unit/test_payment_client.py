"""
Unit tests for PaymentProviderClient.

Uses httpx.MockTransport with a small router keyed by (method, path).
"""

from urllib.parse import parse_qs

import httpx
import pytest

from entitlement_sync.integrations.payments.client import PaymentProviderClient
from entitlement_sync.integrations.payments.exceptions import (
    PaymentProviderAPIError,
    PaymentProviderAuthenticationError,
    PaymentProviderConnectionError,
    PaymentProviderNotFoundError,
    PaymentProviderRateLimitError,
)


class Router:
    """Maps (method, path) to (status, json body) and records calls."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        key = (request.method, request.url.path)
        self.calls.append((key, request))
        if key not in self.routes:
            return httpx.Response(404, json={"error": {"message": "no such route"}})
        status_code, body, *headers = self.routes[key]
        return httpx.Response(status_code, json=body, headers=headers[0] if headers else None)

    def paths(self):
        return [key for key, _ in self.calls]

    def form(self, method, path) -> dict:
        for key, request in self.calls:
            if key == (method, path):
                return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        raise AssertionError(f"{method} {path} was not called")


def make_client(router: Router) -> PaymentProviderClient:
    return PaymentProviderClient(
        "sk_test_123",
        base_url="https://payments.test/v1",
        transport=httpx.MockTransport(router),
    )


class TestSubscribe:

    @pytest.mark.asyncio
    async def test_recurring_price_creates_subscription(self):
        router = Router({
            ("GET", "/v1/prices/price_1"): (200, {"id": "price_1", "type": "recurring", "product": "prod_1"}),
            ("POST", "/v1/subscriptions"): (200, {"id": "sub_1", "customer": "cus_1", "status": "active"}),
        })

        async with make_client(router) as client:
            price = await client.subscribe("cus_1", "price_1")

        assert price.is_recurring
        assert router.form("POST", "/v1/subscriptions") == {"customer": "cus_1", "items[0][price]": "price_1"}

    @pytest.mark.asyncio
    async def test_one_time_price_is_paid_out_of_band(self):
        router = Router({
            ("GET", "/v1/prices/price_2"): (200, {"id": "price_2", "type": "one_time", "product": "prod_1"}),
            ("POST", "/v1/invoiceitems"): (200, {"id": "ii_1"}),
            ("POST", "/v1/invoices"): (200, {"id": "in_1"}),
            ("POST", "/v1/invoices/in_1/pay"): (200, {"id": "in_1", "status": "paid"}),
        })

        async with make_client(router) as client:
            price = await client.subscribe("cus_1", "price_2")

        assert not price.is_recurring
        assert ("POST", "/v1/subscriptions") not in router.paths()
        assert router.form("POST", "/v1/invoices/in_1/pay") == {"paid_out_of_band": "true"}


class TestCustomers:

    @pytest.mark.asyncio
    async def test_get_or_create_reuses_existing(self):
        router = Router({
            ("GET", "/v1/customers"): (200, {"data": [{"id": "cus_1", "email": "a@example.com"}]}),
        })

        async with make_client(router) as client:
            customer = await client.get_or_create_customer("a@example.com")

        assert customer.id == "cus_1"
        assert ("POST", "/v1/customers") not in router.paths()

    @pytest.mark.asyncio
    async def test_get_or_create_creates_missing(self):
        router = Router({
            ("GET", "/v1/customers"): (200, {"data": []}),
            ("POST", "/v1/customers"): (200, {"id": "cus_2", "email": "b@example.com"}),
        })

        async with make_client(router) as client:
            customer = await client.get_or_create_customer("b@example.com", name="Bea")

        assert customer.id == "cus_2"
        assert router.form("POST", "/v1/customers") == {"email": "b@example.com", "name": "Bea"}

    @pytest.mark.asyncio
    async def test_list_customers_by_email_drops_deleted(self):
        router = Router({
            ("GET", "/v1/customers"): (200, {"data": [
                {"id": "cus_1", "email": "u@example.com"},
                {"id": "cus_2", "email": "u@example.com", "deleted": True},
                {"id": "cus_3", "email": "u@example.com"},
            ]}),
        })

        async with make_client(router) as client:
            customers = await client.list_customers_by_email("u@example.com")

        assert [customer.id for customer in customers] == ["cus_1", "cus_3"]
        _, request = router.calls[0]
        assert request.url.params["email"] == "u@example.com"


class TestLifetimeLookups:

    @pytest.mark.asyncio
    async def test_list_paid_invoices(self):
        router = Router({
            ("GET", "/v1/invoices"): (200, {"data": [{
                "id": "in_1",
                "customer": "cus_1",
                "status": "paid",
                "charge": {"id": "ch_1"},
                "subscription": "sub_1",
                "lines": {"data": [{"id": "il_1", "price": {
                    "id": "price_1",
                    "product": "prod_1",
                    "metadata": {"maxSpaceBytes": "100", "planType": "one_time"},
                }}]},
            }]}),
        })

        async with make_client(router) as client:
            invoices = await client.list_paid_invoices("cus_1")

        _, request = router.calls[0]
        assert request.url.params["customer"] == "cus_1"
        assert request.url.params["status"] == "paid"
        assert invoices[0].charge_id == "ch_1"
        assert invoices[0].subscription_id == "sub_1"
        assert invoices[0].lines[0].price.metadata["planType"] == "one_time"

    @pytest.mark.asyncio
    async def test_out_of_band_invoice_charge_comes_from_metadata(self):
        router = Router({
            ("GET", "/v1/invoices"): (200, {"data": [{
                "id": "in_2",
                "customer": "cus_1",
                "status": "paid",
                "paid_out_of_band": True,
                "metadata": {"chargeId": "ch_external"},
                "lines": {"data": []},
            }]}),
        })

        async with make_client(router) as client:
            invoices = await client.list_paid_invoices("cus_1")

        assert invoices[0].paid_out_of_band
        assert invoices[0].charge_id == "ch_external"

    @pytest.mark.asyncio
    async def test_get_charge(self):
        router = Router({
            ("GET", "/v1/charges/ch_1"): (200, {
                "id": "ch_1",
                "customer": "cus_1",
                "invoice": "in_1",
                "refunded": True,
                "disputed": False,
            }),
        })

        async with make_client(router) as client:
            charge = await client.get_charge("ch_1")

        assert charge.customer_id == "cus_1"
        assert charge.invoice_id == "in_1"
        assert charge.refunded and not charge.disputed

    @pytest.mark.asyncio
    async def test_cancel_subscription(self):
        router = Router({
            ("DELETE", "/v1/subscriptions/sub_1"): (200, {"id": "sub_1", "customer": "cus_1", "status": "canceled"}),
        })

        async with make_client(router) as client:
            subscription = await client.cancel_subscription("sub_1")

        assert subscription.status == "canceled"
        assert router.paths() == [("DELETE", "/v1/subscriptions/sub_1")]


class TestErrorMapping:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_auth_errors(self, status_code):
        router = Router({("GET", "/v1/customers/cus_1"): (status_code, {})})

        async with make_client(router) as client:
            with pytest.raises(PaymentProviderAuthenticationError):
                await client.get_customer("cus_1")

    @pytest.mark.asyncio
    async def test_not_found(self):
        async with make_client(Router({})) as client:
            with pytest.raises(PaymentProviderNotFoundError):
                await client.get_customer("cus_missing")

    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self):
        router = Router({("GET", "/v1/products/prod_1"): (429, {}, {"Retry-After": "7"})})

        async with make_client(router) as client:
            with pytest.raises(PaymentProviderRateLimitError) as exc_info:
                await client.get_product("prod_1")

        assert exc_info.value.retry_after == 7

    @pytest.mark.asyncio
    async def test_server_error(self):
        router = Router({("GET", "/v1/products/prod_1"): (500, {"error": "oops"})})

        async with make_client(router) as client:
            with pytest.raises(PaymentProviderAPIError) as exc_info:
                await client.get_product("prod_1")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def fail(request):
            raise httpx.ConnectError("refused", request=request)

        client = PaymentProviderClient("sk_test_123", transport=httpx.MockTransport(fail))
        async with client:
            with pytest.raises(PaymentProviderConnectionError):
                await client.get_product("prod_1")

    def test_api_key_required(self):
        with pytest.raises(ValueError):
            PaymentProviderClient("")
