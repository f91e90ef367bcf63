import pytest
from fastapi.testclient import TestClient

from track_api.config import Settings, get_settings
from track_api.dependencies import get_aggregator, get_engine
from track_api.main import app
from track_api.schemas import Order, TrackingResult
from track_api.services.analytics import AnalyticsAggregator, InMemoryAnalyticsStore
from track_api.services.carrier import CarrierNotFoundError
from track_api.services.resolver import ResolutionEngine


class FakeGateway:
    """Records calls; orders and shipments are keyed by id / AWB."""

    def __init__(self, orders=None, shipments=None, search_error=None, track_error=None):
        self.orders = orders or {}
        self.shipments = shipments or {}
        self.search_error = search_error
        self.track_error = track_error
        self.calls = []

    def search_order(self, order_id):
        self.calls.append(("search_order", order_id))
        if self.search_error:
            raise self.search_error
        return list(self.orders.get(order_id, []))

    def track_shipment(self, awb):
        self.calls.append(("track_shipment", awb))
        if self.track_error:
            raise self.track_error
        if awb not in self.shipments:
            raise CarrierNotFoundError("Carrier returned 404", status_code=404)
        raw = dict(self.shipments[awb])
        return TrackingResult(tracking_code=awb, order_id=raw.get("order_id"),
                              current_status=raw.get("status"), raw=raw)


@pytest.fixture
def gateway():
    return FakeGateway(
        orders={
            "ORD123": [Order(order_id="ORD123", order_date="2024-05-01",
                             customer_phone="+919876543210", tracking_code=None)],
            "ORD777": [Order(order_id="ORD777", order_date="2024-05-03",
                             customer_phone="+91 98765 43210", tracking_code="AWB777")],
        },
        shipments={
            "AWB777": {"awb": "AWB777", "status": "In Transit", "scans": []},
            "AWB555": {"awb": "AWB555", "status": "Delivered", "order_id": "ORD555"},
        },
    )


@pytest.fixture
def store():
    return InMemoryAnalyticsStore()


@pytest.fixture
def aggregator(store):
    return AnalyticsAggregator(store)


@pytest.fixture
def settings():
    return Settings(carrier_auth_header="Token test", analytics_backend="memory")


@pytest.fixture
def client(gateway, aggregator, settings):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_engine] = lambda: ResolutionEngine(
        gateway, mask_mobile_mismatch=settings.mask_mobile_mismatch)
    app.dependency_overrides[get_aggregator] = lambda: aggregator
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
