from typing import Any, Mapping

from track_api.schemas import LookupRequest

ORDER_ID_KEY = "orderid"


def _canonical_key(key: str) -> str:
    return key.replace("_", "").replace("-", "").lower()


def _clean(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return ""
    return value.strip()


def extract_lookup_request(params: Mapping[str, Any]) -> LookupRequest:
    """
    Pulls order id, mobile and AWB out of raw request parameters.
    orderId / order_id / orderid (any casing) all name the order id;
    the first non-empty variant wins.
    """
    order_id = ""
    mobile = ""
    awb = ""

    for key, value in params.items():
        canon = _canonical_key(str(key))
        if canon == ORDER_ID_KEY and not order_id:
            order_id = _clean(value)
        elif canon == "mobile" and not mobile:
            mobile = _clean(value)
        elif canon == "awb" and not awb:
            awb = _clean(value)

    return LookupRequest(order_id=order_id, mobile=mobile, tracking_code=awb)


def merge_lookup_requests(primary: LookupRequest, fallback: LookupRequest) -> LookupRequest:
    """Field by field, a non-empty value in `primary` beats `fallback`."""
    return LookupRequest(
        order_id=primary.order_id or fallback.order_id,
        mobile=primary.mobile or fallback.mobile,
        tracking_code=primary.tracking_code or fallback.tracking_code,
    )
