"""
Anonymized usage analytics.

Each lookup folds into three records that must change together:
the global stats singleton, the caller's visitor profile and one new
event log entry. Stores expose a versioned read and a conditional
commit; the aggregator retries the read-modify-write until a commit
lands on unchanged versions.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from postgrest.exceptions import APIError
from supabase import Client

from track_api.errors import AnalyticsError
from track_api.schemas import (
    EventLogEntry,
    GlobalStats,
    LookupEvent,
    VisitorProfile,
    utcnow,
)
from track_api.services.identity import derive_visitor_id

logger = logging.getLogger(__name__)

STATS_ID = "global"
MAX_COMMIT_ATTEMPTS = 8


@dataclass
class Snapshot:
    visitor_id: str
    stats: GlobalStats
    stats_version: int  # 0 = record does not exist yet
    profile: Optional[VisitorProfile]
    profile_version: int


@dataclass
class Mutation:
    stats: GlobalStats
    profile: VisitorProfile
    entry: EventLogEntry


def fold_lookup(snapshot: Snapshot, event: LookupEvent, now: datetime) -> Mutation:
    """Pure read-modify-write step of the aggregation transaction."""
    stats = snapshot.stats
    first_sight = snapshot.profile is None

    new_stats = GlobalStats(
        total_lookups=stats.total_lookups + 1,
        unique_visitors=stats.unique_visitors + (1 if first_sight else 0),
        last_activity=now,
    )

    context = event.context
    if first_sight:
        profile = VisitorProfile(
            visitor_id=snapshot.visitor_id,
            first_seen=now,
            last_seen=now,
            visit_count=1,
            latest_location=context.location,
            device=context.device,
        )
    else:
        profile = snapshot.profile.model_copy(update={
            "last_seen": now,
            "visit_count": snapshot.profile.visit_count + 1,
            "latest_location": context.location,
            "device": context.device,
        })

    entry = EventLogEntry(
        event_time=now,
        visitor_id=snapshot.visitor_id,
        search_kind=event.search_kind,
        search_value=event.search_value,
        outcome=event.outcome,
        error_detail=event.error_detail,
        device_info=context.device,
        location=context.location,
    )
    return Mutation(stats=new_stats, profile=profile, entry=entry)


class InMemoryAnalyticsStore:
    """Process-local store for development and tests."""

    def __init__(self):
        self._lock = threading.Lock()
        self._stats = GlobalStats()
        self._stats_version = 0
        self._profiles: dict[str, tuple[VisitorProfile, int]] = {}
        self._events: list[EventLogEntry] = []

    def load(self, visitor_id: str) -> Snapshot:
        with self._lock:
            profile, version = self._profiles.get(visitor_id, (None, 0))
            return Snapshot(
                visitor_id=visitor_id,
                stats=self._stats.model_copy(),
                stats_version=self._stats_version,
                profile=profile.model_copy() if profile else None,
                profile_version=version,
            )

    def commit(self, snapshot: Snapshot, mutation: Mutation) -> bool:
        with self._lock:
            _, current_profile_version = self._profiles.get(snapshot.visitor_id, (None, 0))
            if self._stats_version != snapshot.stats_version:
                return False
            if current_profile_version != snapshot.profile_version:
                return False
            self._stats = mutation.stats
            self._stats_version += 1
            self._profiles[snapshot.visitor_id] = (mutation.profile, current_profile_version + 1)
            self._events.append(mutation.entry)
            return True

    @property
    def stats(self) -> GlobalStats:
        with self._lock:
            return self._stats.model_copy()

    @property
    def events(self) -> list[EventLogEntry]:
        with self._lock:
            return list(self._events)

    def profile(self, visitor_id: str) -> Optional[VisitorProfile]:
        with self._lock:
            found = self._profiles.get(visitor_id)
            return found[0] if found else None


def _get_single(rowset):
    return rowset[0] if rowset else None


class SupabaseAnalyticsStore:
    """
    Rows live in analytics_stats, visitor_profiles and tracking_logs
    (see sql/analytics.sql). The commit goes through the commit_lookup
    function so all three writes share one Postgres transaction.
    """

    def __init__(self, db: Client):
        self.db = db

    def load(self, visitor_id: str) -> Snapshot:
        stats_resp = (
            self.db.table("analytics_stats")
            .select("*")
            .eq("id", STATS_ID)
            .limit(1)
            .execute()
        )
        profile_resp = (
            self.db.table("visitor_profiles")
            .select("*")
            .eq("visitor_id", visitor_id)
            .limit(1)
            .execute()
        )
        stats_row = _get_single(stats_resp.data)
        profile_row = _get_single(profile_resp.data)

        stats = GlobalStats()
        stats_version = 0
        if stats_row:
            stats = GlobalStats(
                total_lookups=stats_row.get("total_lookups") or 0,
                unique_visitors=stats_row.get("unique_visitors") or 0,
                last_activity=stats_row.get("last_activity"),
            )
            stats_version = stats_row.get("version") or 0

        profile = None
        profile_version = 0
        if profile_row:
            profile = VisitorProfile(
                visitor_id=visitor_id,
                first_seen=profile_row["first_seen"],
                last_seen=profile_row["last_seen"],
                visit_count=profile_row.get("visit_count") or 0,
                latest_location=profile_row.get("latest_location") or {},
                device=profile_row.get("device") or {},
            )
            profile_version = profile_row.get("version") or 0

        return Snapshot(visitor_id, stats, stats_version, profile, profile_version)

    def commit(self, snapshot: Snapshot, mutation: Mutation) -> bool:
        params = {
            "p_stats_version": snapshot.stats_version,
            "p_stats": mutation.stats.model_dump(mode="json"),
            "p_profile_version": snapshot.profile_version,
            "p_profile": mutation.profile.model_dump(mode="json"),
            "p_event": mutation.entry.model_dump(mode="json"),
        }
        try:
            resp = self.db.rpc("commit_lookup", params).execute()
        except APIError as e:
            # concurrent first insert of the same row; the function rolled back
            if "lookup_conflict" in (getattr(e, "message", None) or str(e)):
                return False
            raise
        return bool(resp.data)


class AnalyticsAggregator:
    def __init__(self, store=None, max_attempts: int = MAX_COMMIT_ATTEMPTS, clock=utcnow):
        """store=None keeps only the operational log line."""
        self.store = store
        self.max_attempts = max_attempts
        self.clock = clock

    def record(self, event: LookupEvent) -> None:
        """Best effort: failures are logged, never raised."""
        context = event.context
        visitor_id = derive_visitor_id(context.network_address, context.user_agent)
        logger.info(
            "[LOG] %s | Type: %s | Val: %s | Visitor: %s | Msg: %s",
            event.outcome.value.upper(), event.search_kind.value, event.search_value,
            visitor_id, event.error_detail or "OK",
        )
        if self.store is None:
            return
        try:
            self._transact(visitor_id, event)
        except Exception as e:
            logger.error("ANALYTICS ERROR: Could not write to DB: %s", e)

    def _transact(self, visitor_id: str, event: LookupEvent) -> Mutation:
        for attempt in range(1, self.max_attempts + 1):
            snapshot = self.store.load(visitor_id)
            mutation = fold_lookup(snapshot, event, self.clock())
            if self.store.commit(snapshot, mutation):
                return mutation
            logger.debug("Analytics commit conflict for %s (attempt %d)", visitor_id, attempt)
        raise AnalyticsError(f"Gave up after {self.max_attempts} conflicting commits")
