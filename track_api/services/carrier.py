import logging
from typing import Any, Optional
from urllib.parse import quote

import requests

from track_api.schemas import Order, TrackingEvent, TrackingResult

logger = logging.getLogger(__name__)

ORDER_SEARCH_PATH = "/orders/v2/orders/b2c/all"
TRACKING_PATH = "/tracking/v1/shipments/{awb}/all"


class CarrierError(Exception):
    """Any failed call to the carrier aggregator."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CarrierNotFoundError(CarrierError):
    pass


class CarrierStatusError(CarrierError):
    pass


class CarrierUnavailableError(CarrierError):
    pass


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def map_order(raw: Any) -> Order:
    """Raw WareIQ order -> Order. Every field has an absent fallback."""
    raw = _as_dict(raw)
    customer = _as_dict(raw.get("customer_details"))
    shipping = _as_dict(raw.get("shipping_details"))
    return Order(
        order_id=_as_text(raw.get("order_id")) or "",
        order_date=_as_text(raw.get("order_date")),
        customer_phone=_as_text(customer.get("phone")) or "",
        tracking_code=_as_text(shipping.get("awb")),
    )


def _map_event(raw: Any) -> TrackingEvent:
    raw = _as_dict(raw)
    return TrackingEvent(
        timestamp=_as_text(raw.get("time") or raw.get("timestamp") or raw.get("date")),
        description=_as_text(raw.get("status") or raw.get("description") or raw.get("remark")),
    )


def map_tracking(raw: Any, awb: str) -> TrackingResult:
    """Raw WareIQ tracking payload -> TrackingResult, keeping the payload for pass-through."""
    raw = _as_dict(raw)
    history = raw.get("history")
    if not isinstance(history, list):
        history = raw.get("scans") if isinstance(raw.get("scans"), list) else []
    return TrackingResult(
        tracking_code=_as_text(raw.get("awb")) or awb,
        order_id=_as_text(raw.get("order_id")),
        current_status=_as_text(raw.get("status") or raw.get("current_status")),
        history=[_map_event(e) for e in history],
        raw=raw,
    )


class WareIQGateway:
    def __init__(self, auth_header: str, base_url: str = "https://track.wareiq.com",
                 timeout: Optional[float] = None, session=None, page_size: int = 2):
        self.auth_header = auth_header
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        # more than one row lets the caller notice duplicate order ids
        self.page_size = page_size

    @property
    def _headers(self):
        return {"Authorization": self.auth_header, "Content-Type": "application/json"}

    def _send(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = self.session.request(method, url, headers=self._headers,
                                            timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error("WareIQ transport failure on %s: %s", url, e)
            raise CarrierUnavailableError(f"Carrier unreachable: {e}") from e

        if response.status_code == 404:
            raise CarrierNotFoundError("Carrier returned 404", status_code=404)
        if not response.ok:
            logger.warning("WareIQ API Error: %s | %s", response.status_code, response.text[:500])
            raise CarrierStatusError(f"Carrier returned {response.status_code}",
                                     status_code=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            logger.error("WareIQ returned a non-JSON body from %s", url)
            raise CarrierStatusError("Carrier returned an unreadable body", status_code=502) from e

    def search_order(self, order_id: str) -> list[Order]:
        payload = {"search": {"order_details": order_id}, "page": 1, "per_page": self.page_size}
        try:
            data = self._send("POST", f"{self.base_url}{ORDER_SEARCH_PATH}", json=payload)
        except CarrierNotFoundError:
            return []
        rows = _as_dict(data).get("data")
        if not isinstance(rows, list):
            return []
        return [map_order(row) for row in rows]

    def track_shipment(self, awb: str) -> TrackingResult:
        path = TRACKING_PATH.format(awb=quote(awb, safe=""))
        data = self._send("GET", f"{self.base_url}{path}")
        if not isinstance(data, dict):
            logger.error("WareIQ tracking for %s returned %s instead of an object", awb, type(data).__name__)
            raise CarrierStatusError("Carrier returned an unexpected body", status_code=502)
        return map_tracking(data, awb)
