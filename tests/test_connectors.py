"""
Feed connector tests against a fake aiohttp session: status handling,
malformed payloads, retries, caching and the brand filter.
"""
import aiohttp
import pytest

from brandbuddy.connectors import ConfigurationError, FeedError, ProductsConnector, SalesHistoryConnector
from brandbuddy.connectors import products_connector as products_module
from brandbuddy.services import feed_service
from brandbuddy.utils.cache import clear_cache


class FakeResponse:

    def __init__(self, status=200, payload=None, reason="OK", malformed=False):
        self.status = status
        self.reason = reason
        self.payload = payload
        self.malformed = malformed

    async def json(self, content_type=None):
        if self.malformed:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self.payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Replays queued responses (or raises queued exceptions) in order"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, params=None):
        self.calls.append({"url": url, "params": params})
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(autouse=True)
def fresh_cache():
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def connector():
    feed = ProductsConnector()
    feed.base_url = "https://feeds.test/products"
    feed.token = "secret"
    feed.RETRY_BASE_DELAY = 0
    feed.RETRY_MAX_DELAY = 0
    return feed


# ────────────────────────────────────────────
# FETCH
# ────────────────────────────────────────────


class TestFetchRecords:

    async def test_returns_data_rows(self, connector):
        session = FakeSession(FakeResponse(payload={"data": [{"sku": "A"}, "junk", {"sku": "B"}], "rows": 3}))
        records = await connector.fetch_records(session, limit=50, brand_name="Callahan-Smith")

        assert records == [{"sku": "A"}, {"sku": "B"}]
        assert session.calls[0]["params"] == {"token": "secret", "limit": 50, "brand_name": "Callahan-Smith"}
        assert connector.fetch_count == 1

    async def test_malformed_json_is_a_feed_error(self, connector):
        session = FakeSession(FakeResponse(malformed=True))
        with pytest.raises(FeedError, match="malformed JSON"):
            await connector.fetch_records(session)

        assert len(session.calls) == 1
        assert connector.error_count == 1

    @pytest.mark.parametrize("payload", [
        ["not", "an", "object"],
        "text",
        {"data": "rows"},
        {"data": {"sku": "A"}},
    ])
    async def test_unusable_payload_is_a_feed_error(self, connector, payload):
        session = FakeSession(FakeResponse(payload=payload))
        with pytest.raises(FeedError):
            await connector.fetch_records(session)
        assert len(session.calls) == 1

    async def test_missing_data_key_is_empty(self, connector):
        records = await connector.fetch_records(FakeSession(FakeResponse(payload={"rows": 0})))
        assert records == []

    async def test_client_error_status_is_not_retried(self, connector):
        session = FakeSession(FakeResponse(status=404, reason="Not Found"))
        with pytest.raises(FeedError) as exc:
            await connector.fetch_records(session)

        assert exc.value.status == 404
        assert len(session.calls) == 1
        assert connector.error_count == 1

    async def test_server_error_is_retried_then_raised(self, connector):
        session = FakeSession(FakeResponse(status=503, reason="Service Unavailable"))
        with pytest.raises(FeedError):
            await connector.fetch_records(session)
        assert len(session.calls) == 3

    async def test_transient_failure_recovers(self, connector):
        session = FakeSession(
            FakeResponse(status=502, reason="Bad Gateway"),
            FakeResponse(payload={"data": [{"sku": "A"}]}),
        )
        records = await connector.fetch_records(session)

        assert records == [{"sku": "A"}]
        assert connector.retry_count == 1

    async def test_network_error_becomes_feed_error(self, connector):
        session = FakeSession(aiohttp.ClientConnectionError("connection refused"))
        with pytest.raises(FeedError, match="unreachable"):
            await connector.fetch_records(session)
        assert len(session.calls) == 3

    async def test_cached_page_skips_the_network(self, connector):
        connector.cache_seconds = 60
        session = FakeSession(FakeResponse(payload={"data": [{"sku": "A"}]}))

        await connector.fetch_records(session, limit=10)
        await connector.fetch_records(session, limit=10)

        assert len(session.calls) == 1

    async def test_missing_configuration(self, connector):
        connector.token = None
        with pytest.raises(ConfigurationError, match="TINYBIRD_BASE_URL and TINYBIRD_TOKEN"):
            await connector.fetch_records(FakeSession(FakeResponse()))


class TestConnectorStatus:

    def test_status_never_includes_token(self, connector):
        status = connector.get_status()
        assert status["name"] == "products"
        assert status["configured"] is True
        assert "secret" not in str(status)

    def test_sales_history_params(self):
        params = SalesHistoryConnector().build_params(sku="SKU-1", brand_name="Callahan-Smith", limit=20)
        assert params == {"sku": "SKU-1", "limit": 20, "brand_name": "Callahan-Smith"}


# ────────────────────────────────────────────
# FEED SERVICE
# ────────────────────────────────────────────


class FakeFeed:
    rows = []

    def require_configuration(self):
        pass

    async def fetch_records(self, session=None, **kwargs):
        return self.rows


class TestFeedService:

    def test_filter_by_brand(self):
        records = [{"brand_name": "A"}, {"brand_name": "B"}, {"brand_name": "a"}, {}]
        assert feed_service.filter_by_brand(records, "A") == [{"brand_name": "A"}]
        assert feed_service.filter_by_brand(feed_service.filter_by_brand(records, "A"), "A") == [{"brand_name": "A"}]

    async def test_fetch_feeds_filters_both_feeds(self, monkeypatch):
        class Products(FakeFeed):
            rows = [{"brand_name": "Callahan-Smith", "sku": "A"}, {"brand_name": "Other", "sku": "B"}]

        class Shipments(FakeFeed):
            rows = [{"brand_name": "Other"}]

        monkeypatch.setattr(feed_service, "ProductsConnector", Products)
        monkeypatch.setattr(feed_service, "ShipmentsConnector", Shipments)

        products, shipments = await feed_service.fetch_feeds(brand="Callahan-Smith")

        assert products == [{"brand_name": "Callahan-Smith", "sku": "A"}]
        assert shipments == []

    async def test_feed_error_propagates(self, monkeypatch):
        class Broken(FakeFeed):
            async def fetch_records(self, session=None, **kwargs):
                raise FeedError("HTTP 500: Internal Server Error", status=500)

        monkeypatch.setattr(feed_service, "ProductsConnector", FakeFeed)
        monkeypatch.setattr(feed_service, "ShipmentsConnector", Broken)

        with pytest.raises(FeedError):
            await feed_service.fetch_feeds()

    async def test_missing_configuration_is_raised_before_fetching(self, monkeypatch):
        monkeypatch.setattr(products_module.settings, "tinybird_base_url", None)
        with pytest.raises(ConfigurationError):
            await feed_service.fetch_feeds()
