import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends

from track_api.config import Settings, get_settings
from track_api.services.analytics import (
    AnalyticsAggregator,
    InMemoryAnalyticsStore,
    SupabaseAnalyticsStore,
)
from track_api.services.carrier import WareIQGateway
from track_api.services.resolver import ResolutionEngine
from track_api.services.supabase_client import get_supabase

logger = logging.getLogger(__name__)


def get_engine(settings: Settings = Depends(get_settings)) -> ResolutionEngine:
    gateway = None
    if settings.carrier_auth_header:
        gateway = WareIQGateway(
            auth_header=settings.carrier_auth_header,
            base_url=settings.carrier_base_url,
            timeout=settings.carrier_timeout,
        )
    return ResolutionEngine(gateway, mask_mobile_mismatch=settings.mask_mobile_mismatch)


@lru_cache(maxsize=None)
def _build_aggregator(backend: str, url: Optional[str], key: Optional[str]) -> AnalyticsAggregator:
    """Raises when Supabase cannot be reached; lru_cache keeps only successful builds."""
    if backend == "memory":
        return AnalyticsAggregator(InMemoryAnalyticsStore())
    if backend == "supabase":
        db = get_supabase(Settings(supabase_url=url, supabase_key=key))
        return AnalyticsAggregator(SupabaseAnalyticsStore(db))
    logger.warning("LOGGING WARNING: no analytics backend configured.")
    return AnalyticsAggregator()


def get_aggregator(settings: Settings = Depends(get_settings)) -> AnalyticsAggregator:
    try:
        return _build_aggregator(settings.analytics_backend, settings.supabase_url, settings.supabase_key)
    except Exception as e:
        # retried on the next request
        logger.warning("LOGGING WARNING: Supabase unavailable, analytics go to the log only: %s", e)
        return AnalyticsAggregator()
