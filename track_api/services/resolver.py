"""
Turns untrusted lookup input into a verified tracking lookup.

START -> VALIDATING -> SEARCHING_ORDER -> VERIFYING_MOBILE
      -> AWB_PENDING | AWB_RESOLVED -> TRACKING -> DONE
Any step may end in REJECTED (client error) or UPSTREAM_ERROR (carrier failure).
A tracking code supplied directly jumps from START to AWB_RESOLVED.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from track_api.errors import (
    ClientInputError,
    ConfigurationError,
    NotFoundError,
    UpstreamError,
)
from track_api.schemas import (
    ClientContext,
    LookupEvent,
    LookupRequest,
    Outcome,
    PendingResponse,
    SearchKind,
)
from track_api.services import mobile as mobile_verifier
from track_api.services.carrier import CarrierError, CarrierNotFoundError, CarrierUnavailableError

logger = logging.getLogger(__name__)

ORDER_NOT_FOUND = "Order ID not found."
MOBILE_MISMATCH = "Mobile number does not match this Order ID."


class ResolutionState(str, Enum):
    START = "START"
    VALIDATING = "VALIDATING"
    SEARCHING_ORDER = "SEARCHING_ORDER"
    VERIFYING_MOBILE = "VERIFYING_MOBILE"
    AWB_PENDING = "AWB_PENDING"
    AWB_RESOLVED = "AWB_RESOLVED"
    TRACKING = "TRACKING"
    DONE = "DONE"
    REJECTED = "REJECTED"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"


TERMINAL_STATES = {
    ResolutionState.DONE,
    ResolutionState.AWB_PENDING,
    ResolutionState.REJECTED,
    ResolutionState.UPSTREAM_ERROR,
}


@dataclass
class LookupOutcome:
    state: ResolutionState
    status_code: int
    body: dict[str, Any]
    search_kind: SearchKind
    search_value: str
    outcome: Outcome
    error_detail: Optional[str] = None
    trail: list[ResolutionState] = field(default_factory=list)

    def to_event(self, context: ClientContext) -> LookupEvent:
        return LookupEvent(
            search_kind=self.search_kind,
            search_value=self.search_value,
            outcome=self.outcome,
            error_detail=self.error_detail,
            context=context,
        )


def _upstream_status(error: CarrierError) -> int:
    if isinstance(error, CarrierUnavailableError) or not error.status_code:
        return 500
    return error.status_code if error.status_code >= 400 else 502


class _Run:
    """Mutable bookkeeping for one resolve() call."""

    def __init__(self, request: LookupRequest):
        self.request = request
        self.trail = [ResolutionState.START]
        if request.is_mixed:
            self.kind, self.value = SearchKind.MIXED, "tracking_code+order_id"
        elif request.order_id:
            self.kind, self.value = SearchKind.ORDER_ID, request.order_id
        elif request.tracking_code:
            self.kind, self.value = SearchKind.TRACKING_CODE, request.tracking_code
        else:
            self.kind, self.value = SearchKind.UNKNOWN, ""

    def enter(self, state: ResolutionState):
        self.trail.append(state)

    def finish(self, state, status_code, body, outcome, detail=None) -> LookupOutcome:
        self.enter(state)
        return LookupOutcome(
            state=state,
            status_code=status_code,
            body=body,
            search_kind=self.kind,
            search_value=self.value,
            outcome=outcome,
            error_detail=detail,
            trail=self.trail,
        )


class ResolutionEngine:
    def __init__(self, gateway, mask_mobile_mismatch: bool = False):
        """
        gateway: object with search_order(order_id) and track_shipment(awb),
        or None when the carrier credential is not configured.
        mask_mobile_mismatch: report a wrong mobile exactly like an unknown
        order (404) instead of a distinct 400.
        """
        self.gateway = gateway
        self.mask_mobile_mismatch = mask_mobile_mismatch

    def resolve(self, request: LookupRequest) -> LookupOutcome:
        run = _Run(request)
        try:
            return self._resolve(run)
        except ConfigurationError as e:
            logger.critical("CRITICAL: WAREIQ_AUTH_HEADER missing.")
            return run.finish(ResolutionState.UPSTREAM_ERROR, e.status_code, {"error": e.message},
                              Outcome.ERROR, e.detail)
        except ClientInputError as e:
            return run.finish(ResolutionState.REJECTED, e.status_code, {"error": e.message},
                              Outcome.FAILED, e.detail)
        except UpstreamError as e:
            return run.finish(ResolutionState.UPSTREAM_ERROR, e.status_code, {"error": e.message},
                              Outcome.FAILED, e.detail)
        except Exception as e:
            logger.exception("CRITICAL EXCEPTION while resolving %s", run.value)
            return run.finish(ResolutionState.UPSTREAM_ERROR, 500, {"error": "Internal Server Error"},
                              Outcome.ERROR, str(e))

    def _resolve(self, run: _Run) -> LookupOutcome:
        request = run.request

        if self.gateway is None:
            raise ConfigurationError()

        if request.is_mixed:
            raise ClientInputError("Invalid Request: Provide EITHER AWB OR OrderID/Mobile.",
                                   detail="Invalid Parameters")

        awb = request.tracking_code
        order_id = request.order_id

        if not awb and order_id:
            run.enter(ResolutionState.VALIDATING)
            self._validate_mobile(request.mobile)

            run.enter(ResolutionState.SEARCHING_ORDER)
            order = self._find_order(order_id)

            run.enter(ResolutionState.VERIFYING_MOBILE)
            if not mobile_verifier.matches(order.customer_phone, request.mobile):
                if self.mask_mobile_mismatch:
                    raise NotFoundError(ORDER_NOT_FOUND, detail="Mobile Mismatch")
                raise ClientInputError(MOBILE_MISMATCH, detail="Mobile Mismatch")

            if not order.tracking_code:
                pending = PendingResponse(order_id=order.order_id or order_id,
                                          order_date=order.order_date)
                return run.finish(ResolutionState.AWB_PENDING, 200, pending.model_dump(),
                                  Outcome.PENDING, "Confirmed, No AWB")
            awb = order.tracking_code

        if not awb:
            raise ClientInputError("Please provide valid tracking details.", detail="Missing Parameters")

        run.enter(ResolutionState.AWB_RESOLVED)
        run.enter(ResolutionState.TRACKING)
        result = self._track(awb)
        if order_id and not result.order_id:
            result.order_id = order_id
        return run.finish(ResolutionState.DONE, 200, result.to_response(), Outcome.SUCCESS)

    def _validate_mobile(self, mobile: str):
        if not mobile:
            raise ClientInputError("Mobile number is required.", detail="Missing Mobile")
        if not mobile_verifier.is_valid_input(mobile):
            raise ClientInputError("Mobile number must be exactly 10 digits.",
                                   detail="Invalid Mobile Format")

    def _find_order(self, order_id: str):
        try:
            orders = self.gateway.search_order(order_id)
        except CarrierError as e:
            raise UpstreamError("Order search failed.", detail=f"WareIQ API Error: {e}",
                                status_code=_upstream_status(e)) from e
        if not orders:
            raise NotFoundError(ORDER_NOT_FOUND, detail="Order Not Found")
        if len(orders) > 1:
            # TODO: disambiguate duplicate order ids once the search API can filter by phone
            logger.warning("Order search for %s returned %d matches; using the first",
                           order_id, len(orders))
        return orders[0]

    def _track(self, awb: str):
        try:
            return self.gateway.track_shipment(awb)
        except CarrierNotFoundError as e:
            raise UpstreamError("Tracking info not found.", detail="Tracking Info Not Found",
                                status_code=404) from e
        except CarrierError as e:
            raise UpstreamError("Tracking info not found.", detail=f"WareIQ API Error: {e}",
                                status_code=_upstream_status(e)) from e
