from unittest.mock import MagicMock

import pytest

from track_api.schemas import LookupRequest, Order, Outcome, SearchKind
from track_api.services.carrier import CarrierStatusError, CarrierUnavailableError, WareIQGateway
from track_api.services.resolver import ResolutionEngine, ResolutionState, TERMINAL_STATES

from conftest import FakeGateway


def resolve(gateway, **fields):
    return ResolutionEngine(gateway).resolve(LookupRequest(**fields))


@pytest.mark.parametrize("fields", [
    {"tracking_code": "AWB1", "order_id": "ORD123"},
    {"tracking_code": "AWB1", "mobile": "9876543210"},
    {"tracking_code": "AWB1", "order_id": "ORD123", "mobile": "9876543210"},
])
def test_mixed_input_rejected_before_any_call(gateway, fields):
    outcome = resolve(gateway, **fields)
    assert outcome.status_code == 400
    assert outcome.state == ResolutionState.REJECTED
    assert outcome.search_kind == SearchKind.MIXED
    assert gateway.calls == []


@pytest.mark.parametrize("mobile", ["", "98765", "+919876543210", "98765432101", "abcdefghij"])
def test_bad_mobile_rejected_before_any_call(gateway, mobile):
    outcome = resolve(gateway, order_id="ORD123", mobile=mobile)
    assert outcome.status_code == 400
    assert outcome.outcome == Outcome.FAILED
    assert gateway.calls == []


def test_missing_everything(gateway):
    outcome = resolve(gateway)
    assert outcome.status_code == 400
    assert outcome.body == {"error": "Please provide valid tracking details."}
    assert outcome.search_kind == SearchKind.UNKNOWN


def test_mobile_without_order_id_is_missing_input(gateway):
    outcome = resolve(gateway, mobile="9876543210")
    assert outcome.status_code == 400
    assert gateway.calls == []


def test_pending_order_without_awb(gateway):
    outcome = resolve(gateway, order_id="ORD123", mobile="9876543210")
    assert outcome.status_code == 200
    assert outcome.state == ResolutionState.AWB_PENDING
    assert outcome.body["status"] == "processing"
    assert outcome.body["order_id"] == "ORD123"
    assert outcome.body["order_date"] == "2024-05-01"
    assert outcome.outcome == Outcome.PENDING
    assert gateway.calls == [("search_order", "ORD123")]
    assert outcome.trail == [
        ResolutionState.START,
        ResolutionState.VALIDATING,
        ResolutionState.SEARCHING_ORDER,
        ResolutionState.VERIFYING_MOBILE,
        ResolutionState.AWB_PENDING,
    ]


def test_order_with_awb_tracks_once_and_backfills_order_id(gateway):
    outcome = resolve(gateway, order_id="ORD777", mobile="9876543210")
    assert outcome.status_code == 200
    assert outcome.state == ResolutionState.DONE
    assert outcome.body["order_id"] == "ORD777"
    assert outcome.body["status"] == "In Transit"
    assert gateway.calls == [("search_order", "ORD777"), ("track_shipment", "AWB777")]
    assert outcome.search_kind == SearchKind.ORDER_ID
    assert outcome.outcome == Outcome.SUCCESS


def test_direct_awb_skips_order_search(gateway):
    outcome = resolve(gateway, tracking_code="AWB555")
    assert outcome.status_code == 200
    assert outcome.body["order_id"] == "ORD555"
    assert gateway.calls == [("track_shipment", "AWB555")]
    assert ResolutionState.VALIDATING not in outcome.trail
    assert outcome.trail[-3:] == [ResolutionState.AWB_RESOLVED, ResolutionState.TRACKING,
                                  ResolutionState.DONE]


def test_unknown_order_is_404(gateway):
    outcome = resolve(gateway, order_id="NOPE", mobile="9876543210")
    assert outcome.status_code == 404
    assert outcome.body == {"error": "Order ID not found."}
    assert outcome.error_detail == "Order Not Found"


def test_mobile_mismatch_is_400(gateway):
    outcome = resolve(gateway, order_id="ORD123", mobile="1111111111")
    assert outcome.status_code == 400
    assert outcome.body == {"error": "Mobile number does not match this Order ID."}
    assert outcome.state == ResolutionState.REJECTED


def test_masked_mobile_mismatch_looks_like_unknown_order(gateway):
    engine = ResolutionEngine(gateway, mask_mobile_mismatch=True)
    masked = engine.resolve(LookupRequest(order_id="ORD123", mobile="1111111111"))
    unknown = engine.resolve(LookupRequest(order_id="NOPE", mobile="1111111111"))
    assert masked.status_code == unknown.status_code == 404
    assert masked.body == unknown.body


def test_first_of_multiple_matches_is_used():
    gateway = FakeGateway(orders={"DUP": [
        Order(order_id="DUP", customer_phone="9876543210"),
        Order(order_id="DUP", customer_phone="1111111111", tracking_code="AWBX"),
    ]})
    outcome = resolve(gateway, order_id="DUP", mobile="9876543210")
    assert outcome.state == ResolutionState.AWB_PENDING


def test_tracking_404_is_upstream_failure_with_404(gateway):
    outcome = resolve(gateway, tracking_code="AWB999")
    assert outcome.status_code == 404
    assert outcome.state == ResolutionState.UPSTREAM_ERROR
    assert "error" in outcome.body
    assert outcome.outcome == Outcome.FAILED


def test_search_transport_failure_is_500():
    gateway = FakeGateway(search_error=CarrierUnavailableError("down"))
    outcome = resolve(gateway, order_id="ORD1", mobile="9876543210")
    assert outcome.status_code == 500
    assert outcome.state == ResolutionState.UPSTREAM_ERROR
    assert outcome.body == {"error": "Order search failed."}


def test_tracking_status_failure_passes_status_through():
    gateway = FakeGateway(track_error=CarrierStatusError("boom", status_code=503))
    outcome = resolve(gateway, tracking_code="AWB1")
    assert outcome.status_code == 503


def test_missing_configuration_is_500():
    outcome = ResolutionEngine(None).resolve(LookupRequest(tracking_code="AWB1"))
    assert outcome.status_code == 500
    assert outcome.body == {"error": "Server Error: Configuration Missing"}
    assert outcome.outcome == Outcome.ERROR


def test_unexpected_exception_is_internal_error():
    class Broken(FakeGateway):
        def track_shipment(self, awb):
            raise RuntimeError("kaboom")

    outcome = resolve(Broken(), tracking_code="AWB1")
    assert outcome.status_code == 500
    assert outcome.body == {"error": "Internal Server Error"}
    assert outcome.outcome == Outcome.ERROR
    assert outcome.error_detail == "kaboom"


def test_every_outcome_ends_in_a_terminal_state(gateway):
    cases = [
        {},
        {"tracking_code": "AWB1", "order_id": "X"},
        {"order_id": "ORD123", "mobile": "9876543210"},
        {"order_id": "ORD777", "mobile": "9876543210"},
        {"tracking_code": "AWB999"},
    ]
    for fields in cases:
        assert resolve(gateway, **fields).state in TERMINAL_STATES


def test_non_ascii_digit_mobile_rejected_before_any_call(gateway):
    outcome = resolve(gateway, order_id="ORD123", mobile="९८७६५४३२१०")
    assert outcome.status_code == 400
    assert outcome.body == {"error": "Mobile number must be exactly 10 digits."}
    assert gateway.calls == []


def test_non_object_tracking_body_is_upstream_error():
    session = MagicMock()
    session.request.return_value.status_code = 200
    session.request.return_value.ok = True
    session.request.return_value.json.return_value = [{"awb": "AWB1", "status": "Delivered"}]
    gateway = WareIQGateway("Token abc", session=session)
    outcome = resolve(gateway, tracking_code="AWB1")
    assert outcome.status_code == 502
    assert outcome.state == ResolutionState.UPSTREAM_ERROR
    assert outcome.outcome == Outcome.FAILED
