import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

# Keep test log files out of the working tree
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="order_sync_logs_"))

from order_sync.api.client import ProviderClient  # noqa: E402
from order_sync.config.settings import Settings  # noqa: E402
from order_sync.db.cache_store import CacheStore  # noqa: E402
from order_sync.models.order import ApiCredential  # noqa: E402

BASE_URL = "https://provider.test"


def _raw_order(order_id: Any, **fields: Any) -> Dict[str, Any]:
    raw = {
        "id": order_id,
        "tracking_number": f"TN{order_id}",
        "sub_status": 1,
        "status_name": "shipped",
        "created_at": "2024-01-01T00:00:00Z",
        "updated_at": "2024-01-01T00:00:00Z",
        "receiver_name": f"Customer {order_id}",
        "receiver_phone": "0900000000",
        "receiver_address": "12 Tran Hung Dao",
        "cod": 150000,
        "shipping_fee": 20000,
    }
    raw.update(fields)
    return raw


class FakeProvider:
    """In-memory provider behind httpx.MockTransport.

    `endpoints` maps a path to every record it serves; pages are sliced by
    the request's page_number / page_size. Unknown paths answer 404.
    `raw_bodies` serves a non-JSON 200 body for a (path, page).
    """

    def __init__(self):
        self.shops: Optional[List[Dict[str, Any]]] = []
        self.endpoints: Dict[str, List[Dict[str, Any]]] = {}
        self.envelope_extras: Dict[str, Dict[str, Any]] = {}
        self.failures: Dict[Tuple[str, int], int] = {}
        self.raw_bodies: Dict[Tuple[str, int], str] = {}
        self.calls: List[Tuple[str, int]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        page = int(request.url.params.get("page_number", 1))
        size = int(request.url.params.get("page_size", 100))
        self.calls.append((path, page))

        if (path, page) in self.failures:
            return httpx.Response(self.failures[(path, page)], json={"message": "provider error"})
        if (path, page) in self.raw_bodies:
            return httpx.Response(200, text=self.raw_bodies[(path, page)])

        if path == "/shops":
            if self.shops is None:
                return httpx.Response(500, json={"message": "shops unavailable"})
            return httpx.Response(200, json={"shops": self.shops})

        if path not in self.endpoints:
            return httpx.Response(404, json={"message": "not found"})

        records = self.endpoints[path]
        body = {"data": records[(page - 1) * size:page * size]}
        body.update(self.envelope_extras.get(path, {}))
        return httpx.Response(200, json=body)

    def calls_to(self, path: str) -> List[int]:
        return [page for called, page in self.calls if called == path]

    def client(self, credential: ApiCredential) -> ProviderClient:
        return ProviderClient(credential, transport=httpx.MockTransport(self.handler))


class StubOrchestrator:
    """Stands in for FetchOrchestrator; queued results are returned in order, the last one repeats."""

    def __init__(self, results=None):
        self.results = list(results or [])
        self.error: Optional[Exception] = None
        self.calls = 0

    async def sync_all(self, filters=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


@pytest.fixture
def make_raw_order():
    return _raw_order


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def credential() -> ApiCredential:
    return ApiCredential(id="cfg-1", display_name="Main account", api_key="key-1", base_url=BASE_URL, is_active=True)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        credentials_path=str(tmp_path / "credentials.json"),
        api_key=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}",
        warning_status_path=str(tmp_path / "warning_statuses.json"),
        page_delay_seconds=0.0,
        http_retries=0,
        glitchtip_dsn=None,
    )


@pytest.fixture
async def cache_store(settings: Settings):
    store = CacheStore.from_url(settings.database_url)
    await store.init()
    yield store
    await store.close()
