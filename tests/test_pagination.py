import httpx
import pytest

from order_sync.api.client import OrderFilters, ProviderClient, extract_records, parse_order_page
from order_sync.api.endpoints import candidate_order_endpoints, is_purchase_endpoint
from order_sync.api.pagination import EndpointResolver, Paginator, has_more_pages
from order_sync.core.exceptions import EndpointNotResolvedError


def _records(count, start=1):
    return [{"id": i, "sub_status": 1} for i in range(start, start + count)]


@pytest.mark.asyncio
async def test_resolver_falls_back_after_404(provider, credential):
    provider.endpoints["/shops/S1/orders_returned"] = _records(3)

    async with provider.client(credential) as client:
        resolved = await EndpointResolver(client).resolve("S1")

    assert resolved.path == "/shops/S1/orders_returned"
    assert len(resolved.first_page.orders) == 3
    assert provider.calls_to("/shops/S1/orders") == [1]


@pytest.mark.asyncio
async def test_resolver_skips_empty_candidates(provider, credential):
    provider.endpoints["/orders"] = []
    provider.endpoints["/transactions"] = _records(2)

    async with provider.client(credential) as client:
        resolved = await EndpointResolver(client).resolve(None)

    assert resolved.path == "/transactions"
    assert provider.calls_to("/order") == [1]


@pytest.mark.asyncio
async def test_resolver_propagates_other_http_errors(provider, credential):
    provider.failures[("/shops/S1/orders", 1)] = 500
    provider.endpoints["/shops/S1/orders_returned"] = _records(3)

    async with provider.client(credential) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await EndpointResolver(client).resolve("S1")

    assert provider.calls_to("/shops/S1/orders_returned") == []


@pytest.mark.asyncio
async def test_resolver_raises_when_every_candidate_is_missing(provider, credential):
    async with provider.client(credential) as client:
        with pytest.raises(EndpointNotResolvedError) as exc_info:
            await EndpointResolver(client).resolve("S1")

    assert exc_info.value.attempted == 2
    assert not exc_info.value.shop_is_empty


@pytest.mark.asyncio
async def test_resolver_reports_empty_shop(provider, credential):
    provider.endpoints["/shops/S1/orders"] = []

    async with provider.client(credential) as client:
        with pytest.raises(EndpointNotResolvedError) as exc_info:
            await EndpointResolver(client).resolve("S1")

    assert exc_info.value.shop_is_empty


@pytest.mark.asyncio
async def test_pages_until_reported_total(provider, credential):
    provider.endpoints["/shops/S1/orders"] = _records(250)
    provider.envelope_extras["/shops/S1/orders"] = {"total_entries": 250}

    async with provider.client(credential) as client:
        orders = await Paginator(client).fetch_all("S1")

    assert len(orders) == 250
    assert [o["id"] for o in orders] == list(range(1, 251))
    assert provider.calls_to("/shops/S1/orders") == [1, 2, 3]


@pytest.mark.asyncio
async def test_pages_until_reported_page_count(provider, credential):
    provider.endpoints["/shops/S1/orders"] = _records(200)
    provider.envelope_extras["/shops/S1/orders"] = {"total_pages": 2}

    async with provider.client(credential) as client:
        orders = await Paginator(client).fetch_all("S1")

    assert len(orders) == 200
    assert provider.calls_to("/shops/S1/orders") == [1, 2]


@pytest.mark.asyncio
async def test_short_page_ends_pagination_without_totals(provider, credential):
    provider.endpoints["/shops/S1/orders"] = _records(150)

    async with provider.client(credential) as client:
        orders = await Paginator(client).fetch_all("S1")

    assert len(orders) == 150
    assert provider.calls_to("/shops/S1/orders") == [1, 2]


@pytest.mark.asyncio
async def test_mid_stream_error_keeps_fetched_pages(provider, credential):
    provider.endpoints["/shops/S1/orders"] = _records(300)
    provider.failures[("/shops/S1/orders", 2)] = 502

    async with provider.client(credential) as client:
        orders = await Paginator(client).fetch_all("S1")

    assert len(orders) == 100
    assert provider.calls_to("/shops/S1/orders") == [1, 2]


@pytest.mark.asyncio
async def test_malformed_page_keeps_fetched_pages(provider, credential):
    provider.endpoints["/shops/S1/orders"] = _records(150)
    provider.raw_bodies[("/shops/S1/orders", 2)] = "<html>Bad Gateway</html>"

    async with provider.client(credential) as client:
        orders = await Paginator(client).fetch_all("S1")

    assert len(orders) == 100
    assert provider.calls_to("/shops/S1/orders") == [1, 2]


@pytest.mark.asyncio
async def test_safety_bound_stops_pagination(provider, credential):
    provider.endpoints["/shops/S1/orders"] = _records(1000, start=1)

    async with provider.client(credential) as client:
        orders = await Paginator(client, page_size=100, max_pages=3).fetch_all("S1")

    assert len(orders) == 300
    assert provider.calls_to("/shops/S1/orders") == [1, 2, 3]


@pytest.mark.asyncio
async def test_returned_orders_are_tagged(provider, credential):
    provider.endpoints["/shops/S1/orders_returned"] = [
        {"id": 1},
        {"id": 2, "sub_status": 7},
    ]

    async with provider.client(credential) as client:
        orders = await Paginator(client).fetch_returned("S1")

    assert [o["from_returned_endpoint"] for o in orders] == [True, True]
    assert orders[0]["sub_status"] == 8
    assert orders[1]["sub_status"] == 7


@pytest.mark.asyncio
async def test_returned_orders_404_is_quiet(provider, credential):
    async with provider.client(credential) as client:
        assert await Paginator(client).fetch_returned("S1") == []


@pytest.mark.asyncio
async def test_orders_paged_from_returned_endpoint_are_tagged(provider, credential):
    provider.endpoints["/shops/S1/orders_returned"] = [{"id": 9}]

    async with provider.client(credential) as client:
        orders = await Paginator(client).fetch_all("S1")

    assert orders == [{"id": 9, "from_returned_endpoint": True, "sub_status": 8}]


@pytest.mark.asyncio
async def test_malformed_returned_page_is_quiet(provider, credential):
    provider.raw_bodies[("/shops/S1/orders_returned", 1)] = "maintenance"

    async with provider.client(credential) as client:
        assert await Paginator(client).fetch_returned("S1") == []


@pytest.mark.asyncio
async def test_filters_are_sent_as_query_params(provider, credential):
    provider.endpoints["/shops/S1/orders"] = _records(1)
    seen = []
    handler = provider.handler

    def recording_handler(request):
        seen.append(request.url.params)
        return handler(request)

    client = ProviderClient(credential, transport=httpx.MockTransport(recording_handler))
    try:
        await Paginator(client).fetch_all("S1", OrderFilters(status=["1", "2"], date_from=100, date_to=200))
    finally:
        await client.close()

    params = seen[0]
    assert params.get_list("filter_status[]") == ["1", "2"]
    assert params["start_time"] == "100"
    assert params["end_time"] == "200"
    assert params["api_key"] == "key-1"


def test_has_more_pages_rules():
    assert has_more_pages(1, 100, 100, 0, 0, 100)
    assert not has_more_pages(1, 99, 99, 0, 0, 100)
    assert not has_more_pages(2, 100, 200, 200, 0, 100)
    assert has_more_pages(1, 100, 100, 0, 3, 100)
    assert not has_more_pages(3, 100, 300, 0, 3, 100)


def test_candidates_prefer_shop_scoped_endpoints():
    assert candidate_order_endpoints("9") == ["/shops/9/orders", "/shops/9/orders_returned"]
    assert candidate_order_endpoints(None)[0] == "/orders"
    assert is_purchase_endpoint("/shops/9/purchases")
    assert not is_purchase_endpoint("/shops/9/orders")


def test_envelope_shapes():
    assert extract_records([{"id": 1}, "junk"]) == [{"id": 1}]
    assert extract_records({"data": {"id": 1}}) == [{"id": 1}]
    assert extract_records({"orders": [{"id": 2}]}) == [{"id": 2}]
    assert extract_records({"results": [{"id": 3}]}) == [{"id": 3}]
    assert extract_records({"success": True}) == []

    page = parse_order_page({"data": [{"id": 1}], "total": "40", "total_pages": 1})
    assert page.total_entries == 40
    assert page.total_pages == 1
