from typing import Any, Mapping

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from track_api.config import Settings, get_settings
from track_api.dependencies import get_aggregator, get_engine
from track_api.schemas import LookupRequest
from track_api.services.analytics import AnalyticsAggregator
from track_api.services.identity import client_context
from track_api.services.normalizer import extract_lookup_request, merge_lookup_requests
from track_api.services.resolver import ResolutionEngine

router = APIRouter(prefix="/api", tags=["Tracking"])

FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def _read_body(request: Request) -> Mapping[str, Any]:
    if request.method != "POST":
        return {}
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type in FORM_TYPES:
        return await request.form()
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


async def _read_lookup(request: Request) -> LookupRequest:
    """Query string and body are normalized separately; the query string wins per field."""
    from_query = extract_lookup_request(request.query_params)
    from_body = extract_lookup_request(await _read_body(request))
    return merge_lookup_requests(from_query, from_body)


@router.options("/track-order")
async def track_order_preflight():
    return Response(status_code=200)


@router.api_route("/track-order", methods=["GET", "POST"])
async def track_order(
    request: Request,
    background_tasks: BackgroundTasks,
    settings: Settings = Depends(get_settings),
    engine: ResolutionEngine = Depends(get_engine),
    aggregator: AnalyticsAggregator = Depends(get_aggregator),
):
    lookup = await _read_lookup(request)
    outcome = await run_in_threadpool(engine.resolve, lookup)

    peer = request.client.host if request.client else None
    event = outcome.to_event(client_context(request.headers, peer))

    # sync mode holds the response until the analytics write is attempted
    if settings.analytics_mode == "background":
        background_tasks.add_task(aggregator.record, event)
    else:
        await run_in_threadpool(aggregator.record, event)

    return JSONResponse(status_code=outcome.status_code, content=outcome.body)
