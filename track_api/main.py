import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from track_api.config import get_settings
from track_api.routers.tracking import router as tracking_router

ALLOWED_METHODS = "GET,OPTIONS,POST"
ALLOWED_HEADERS = (
    "X-CSRF-Token, X-Requested-With, Accept, Accept-Version, Content-Length, "
    "Content-MD5, Content-Type, Date, X-Api-Version"
)
NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Shipment Lookup API")


def _current_settings():
    """Honours dependency overrides so tests and embedders see the same origins."""
    return app.dependency_overrides.get(get_settings, get_settings)()


def _apply_headers(request: Request, response):
    origin = request.headers.get("origin")
    if origin and origin in _current_settings().allowed_origins:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Vary"] = "Origin"
    response.headers["Access-Control-Allow-Credentials"] = "true"
    response.headers["Access-Control-Allow-Methods"] = ALLOWED_METHODS
    response.headers["Access-Control-Allow-Headers"] = ALLOWED_HEADERS
    response.headers.update(NO_CACHE_HEADERS)
    return response


@app.middleware("http")
async def cors_and_cache_headers(request: Request, call_next):
    """
    Origin allow-list with credentials, and no caching on any response.
    Preflight requests fall through to the routes' OPTIONS handlers.
    """
    response = await call_next(request)
    return _apply_headers(request, response)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    # runs outside the middleware stack, so headers are applied here as well
    logging.getLogger(__name__).exception("CRITICAL EXCEPTION on %s", request.url.path)
    response = JSONResponse(status_code=500, content={"error": "Internal Server Error"})
    return _apply_headers(request, response)


app.include_router(tracking_router)


@app.get("/")
async def root():
    return {"status": "ONLINE", "engine": "Shipment Lookup V1"}
