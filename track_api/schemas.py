# schemas.py
from pydantic import BaseModel, Field
from typing import Optional, Any
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SearchKind(str, Enum):
    ORDER_ID = "order_id"
    TRACKING_CODE = "tracking_code"
    MIXED = "mixed"
    UNKNOWN = "unknown"


class Outcome(str, Enum):
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"
    ERROR = "error"


class LookupRequest(BaseModel):
    order_id: str = ""
    mobile: str = ""
    tracking_code: str = ""

    @property
    def is_mixed(self) -> bool:
        return bool(self.tracking_code) and bool(self.order_id or self.mobile)


class Order(BaseModel):
    order_id: str = ""
    order_date: Optional[str] = None
    customer_phone: str = ""
    tracking_code: Optional[str] = None


class TrackingEvent(BaseModel):
    timestamp: Optional[str] = None
    description: Optional[str] = None


class TrackingResult(BaseModel):
    tracking_code: str
    order_id: Optional[str] = None
    current_status: Optional[str] = None
    history: list[TrackingEvent] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict, description="Carrier payload, passed through")

    def to_response(self) -> dict[str, Any]:
        body = dict(self.raw)
        if not body.get("order_id") and self.order_id:
            body["order_id"] = self.order_id
        return body


class PendingResponse(BaseModel):
    status: str = "processing"
    order_id: str
    order_date: Optional[str] = None
    message: str = "Order confirmed, tracking generating."


class ClientContext(BaseModel):
    network_address: str = "unknown"
    user_agent: str = "unknown"
    city: str = "Unknown City"
    country: str = "Unknown Country"
    is_mobile: bool = False

    @property
    def device(self) -> dict[str, Any]:
        return {"is_mobile": self.is_mobile, "user_agent_raw": self.user_agent}

    @property
    def location(self) -> dict[str, Any]:
        return {"city": self.city, "country": self.country}


class LookupEvent(BaseModel):
    search_kind: SearchKind
    search_value: str
    outcome: Outcome
    error_detail: Optional[str] = None
    context: ClientContext = Field(default_factory=ClientContext)


class GlobalStats(BaseModel):
    total_lookups: int = 0
    unique_visitors: int = 0
    last_activity: Optional[datetime] = None


class VisitorProfile(BaseModel):
    visitor_id: str
    first_seen: datetime
    last_seen: datetime
    visit_count: int = 1
    latest_location: dict[str, Any] = Field(default_factory=dict)
    device: dict[str, Any] = Field(default_factory=dict)


class EventLogEntry(BaseModel):
    model_config = {"frozen": True}

    event_time: datetime
    visitor_id: str
    search_kind: SearchKind
    search_value: str
    outcome: Outcome
    error_detail: Optional[str] = None
    device_info: dict[str, Any] = Field(default_factory=dict)
    location: dict[str, Any] = Field(default_factory=dict)
