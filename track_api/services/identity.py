import hashlib
import re
from typing import Mapping, Optional
from urllib.parse import unquote

from track_api.schemas import ClientContext

VISITOR_ID_LENGTH = 12  # 48 bits of sha256
_MOBILE_AGENT = re.compile(r"mobile", re.IGNORECASE)


def derive_visitor_id(network_address: str, user_agent: str) -> str:
    """One-way pseudonymous id; the raw address and agent are never stored."""
    digest = hashlib.sha256(f"{network_address}-{user_agent}".encode("utf-8")).hexdigest()
    return digest[:VISITOR_ID_LENGTH]


def _first_forwarded(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    first = value.split(",")[0].strip()
    return first or None


def client_context(headers: Mapping[str, str], peer: Optional[str] = None) -> ClientContext:
    """
    Builds the analytics view of the caller from request headers.
    Location comes from the edge platform's geo headers when present.
    """
    address = _first_forwarded(headers.get("x-forwarded-for")) or peer or "unknown"
    agent = headers.get("user-agent") or "unknown"
    city = headers.get("x-vercel-ip-city")
    country = headers.get("x-vercel-ip-country")

    return ClientContext(
        network_address=address,
        user_agent=agent,
        city=unquote(city) if city else "Unknown City",
        country=country or "Unknown Country",
        is_mobile=bool(_MOBILE_AGENT.search(agent)),
    )
