"""
NASA Space Explorer Backend API
A thin, honest relay between NASA's open APIs and the explorer.
Every answer arrives in the same envelope.
"""

from fastapi import FastAPI, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import ValidationError
from contextlib import asynccontextmanager
from typing import Optional, Dict, Callable
import math
import threading
import time
import traceback

import httpx

from nasa_service import (
    Settings, get_settings, logger, utc_timestamp,
    Envelope, NasaService, NasaAPIError, InvalidParameterError, build_http_client,
    ApodParams, RoverPhotoParams, NeoFeedParams, EpicParams,
    ImageSearchParams, EarthImageryParams,
)

# === RATE LIMITING ===
# Discipline in consumption. One window, one counter per caller.

class RateLimitResult:
    """Outcome of one consume call."""

    def __init__(self, allowed: bool, remaining: int, retry_after: int):
        self.allowed = allowed
        self.remaining = remaining
        self.retry_after = retry_after


class FixedWindowRateLimiter:
    """In-process fixed-window counter keyed by client address.

    State lives only as long as the process. Nothing is shared between
    instances; the store is handed to the app rather than hidden in a global.
    """

    def __init__(self, max_requests: int = 100, window_seconds: float = 900.0,
                 clock: Callable[[], float] = time.monotonic):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, list] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._windows)

    def _sweep(self, now: float):
        """Forget every caller whose window has closed. Runs at most once per window."""
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        expired = [k for k, (start, _) in self._windows.items() if now - start >= self.window_seconds]
        for k in expired:
            del self._windows[k]

    def consume(self, key: str) -> RateLimitResult:
        """Spend one unit for `key`. Rejects once the window's quota is gone."""
        with self._lock:
            now = self._clock()
            self._sweep(now)
            window = self._windows.get(key)
            if window is None or now - window[0] >= self.window_seconds:
                window = [now, 0]
                self._windows[key] = window

            remaining_window = self.window_seconds - (now - window[0])
            if window[1] >= self.max_requests:
                # Never promise more than what is left of the window
                retry_after = max(math.floor(remaining_window), 1)
                return RateLimitResult(False, 0, retry_after)

            window[1] += 1
            return RateLimitResult(True, self.max_requests - window[1], 0)

    def reset(self, key: Optional[str] = None):
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)


RATE_LIMIT_EXEMPT = {"/health"}


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


# === ENVELOPE RESPONSES ===

def envelope_response(envelope: Envelope, status_code: int = 200, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(envelope.to_dict(), status_code=status_code, headers=headers)


def ok(data) -> JSONResponse:
    return envelope_response(Envelope.ok(data))


def fail(status_code: int, message: str, code: str, headers: Optional[dict] = None, **extra) -> JSONResponse:
    return envelope_response(Envelope.fail(message, code, **extra), status_code=status_code, headers=headers)


def _describe_validation(errors) -> str:
    parts = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("query", "path", "body")]
        field = ".".join(loc) or "request"
        parts.append(f"'{field}': {err.get('msg', 'invalid value')}")
    return "Invalid parameter " + "; ".join(parts) if parts else "Invalid parameter"


def internal_error_response(request: Request, exc: Exception, settings: Settings) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    if settings.is_development:
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return fail(500, str(exc) or exc.__class__.__name__, "INTERNAL_SERVER_ERROR", stack=stack)
    return fail(500, "Internal server error", "INTERNAL_SERVER_ERROR")


def install_error_handlers(app: FastAPI, settings: Settings):
    """Every failure path ends in an envelope."""

    @app.exception_handler(InvalidParameterError)
    async def invalid_parameter_handler(request: Request, exc: InvalidParameterError):
        logger.warning(f"Rejected {request.method} {request.url.path}: {exc.code} - {exc.message}")
        return fail(exc.status_code, exc.message, exc.code)

    @app.exception_handler(NasaAPIError)
    async def nasa_error_handler(request: Request, exc: NasaAPIError):
        logger.error(f"{exc.operation.name} failed (upstream status {exc.upstream_status}) for {request.url.path}")
        return fail(exc.status_code, exc.message, exc.code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        message = _describe_validation(exc.errors())
        logger.warning(f"Rejected {request.method} {request.url.path}: {message}")
        return fail(400, message, "INVALID_PARAMETER")

    @app.exception_handler(ValidationError)
    async def model_validation_handler(request: Request, exc: ValidationError):
        message = _describe_validation(exc.errors())
        logger.warning(f"Rejected {request.method} {request.url.path}: {message}")
        return fail(400, message, "INVALID_PARAMETER")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return fail(404, f"Route {request.url.path} not found", "ROUTE_NOT_FOUND")
        if exc.status_code == 405:
            return fail(405, f"Method {request.method} not allowed on {request.url.path}",
                        "METHOD_NOT_ALLOWED", headers=exc.headers)
        return fail(exc.status_code, str(exc.detail), "HTTP_ERROR", headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        return internal_error_response(request, exc, settings)


# === DEPENDENCIES ===

def get_nasa_service(request: Request) -> NasaService:
    return request.app.state.nasa


# === FASTAPI APPLICATION ===

def create_app(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    rate_limiter: Optional[FixedWindowRateLimiter] = None,
) -> FastAPI:
    """Assemble the API. Collaborators may be injected, otherwise built from settings."""
    settings = settings or get_settings()
    owns_client = http_client is None
    http_client = http_client or build_http_client(settings)
    rate_limiter = rate_limiter or FixedWindowRateLimiter(
        settings.rate_limit_max_requests, settings.rate_limit_window_seconds
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"NASA Space Explorer backend starting ({settings.environment})")
        if settings.using_demo_key:
            logger.warning("Using DEMO_KEY for NASA API. Set NASA_API_KEY for production use.")
        yield
        if owns_client:
            await http_client.aclose()
        logger.info("NASA Space Explorer backend stopped")

    app = FastAPI(
        title="NASA Space Explorer API",
        description="Uniform relay over NASA's open APIs",
        version=settings.version,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.rate_limiter = rate_limiter
    app.state.nasa = NasaService(http_client, settings)

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        if request.url.path in RATE_LIMIT_EXEMPT or request.method == "OPTIONS":
            return await call_next(request)
        key = client_key(request)
        result = request.app.state.rate_limiter.consume(key)
        if not result.allowed:
            logger.warning(f"Rate limit exceeded for {key} on {request.url.path}")
            return fail(
                429, "Too many requests, please try again later.", "RATE_LIMIT_EXCEEDED",
                headers={"Retry-After": str(result.retry_after)}, retry_after=result.retry_after,
            )
        return await call_next(request)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"{request.method} {request.url.path} - {client_key(request)}")
        # Handled here so the 500 still passes back through CORS
        try:
            return await call_next(request)
        except Exception as exc:
            return internal_error_response(request, exc, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    install_error_handlers(app, settings)
    register_routes(app, settings)
    return app


def register_routes(app: FastAPI, settings: Settings):

    # === HEALTH CHECK ===

    @app.get("/health", tags=["System"])
    async def health_check():
        """Local heartbeat. Never touches NASA."""
        return ok({
            "status": "healthy",
            "timestamp": utc_timestamp(),
            "version": settings.version,
            "environment": settings.environment,
        })

    @app.get("/api", tags=["System"])
    async def api_index():
        """What this relay knows how to do."""
        return ok({
            "name": "NASA Space Explorer API",
            "version": settings.version,
            "endpoints": {
                "health": "/health",
                "nasa": {
                    "base": "/api/nasa",
                    "endpoints": [
                        "GET /api/nasa/health - NASA API health check",
                        "GET /api/nasa/apod - Astronomy Picture of the Day",
                        "GET /api/nasa/mars-rovers/{rover}/photos - Mars Rover Photos",
                        "GET /api/nasa/mars-rovers/{rover}/manifest - Mars Rover Manifest",
                        "GET /api/nasa/neo - Near Earth Objects",
                        "GET /api/nasa/neo/{id} - Near Earth Object by ID",
                        "GET /api/nasa/epic - EPIC Earth Images",
                        "GET /api/nasa/search - NASA Image Library Search",
                        "GET /api/nasa/earth - Earth Imagery",
                    ],
                },
            },
        })

    @app.get("/api/nasa/health", tags=["System"])
    async def nasa_health(nasa: NasaService = Depends(get_nasa_service)):
        """Probe NASA itself with a cheap APOD call."""
        healthy = await nasa.health_check()
        return ok({
            "status": "healthy" if healthy else "unhealthy",
            "nasa_api": healthy,
            "timestamp": utc_timestamp(),
        })

    # === NASA DATA ENDPOINTS ===

    @app.get("/api/nasa/apod", tags=["APOD"])
    async def get_apod(
        date: Optional[str] = Query(None, description="Specific date (YYYY-MM-DD)"),
        start_date: Optional[str] = Query(None, description="Start of range (YYYY-MM-DD)"),
        end_date: Optional[str] = Query(None, description="End of range (YYYY-MM-DD)"),
        count: Optional[int] = Query(None, description="Number of random pictures"),
        thumbs: Optional[bool] = Query(None, description="Include video thumbnails"),
        nasa: NasaService = Depends(get_nasa_service),
    ):
        """Astronomy Picture of the Day, relayed as-is."""
        params = ApodParams(date=date, start_date=start_date, end_date=end_date, count=count, thumbs=thumbs)
        return ok(await nasa.get_apod(params))

    @app.get("/api/nasa/mars-rovers/{rover}/photos", tags=["Mars Rovers"])
    async def get_mars_rover_photos(
        rover: str,
        sol: Optional[int] = Query(None, description="Martian day"),
        earth_date: Optional[str] = Query(None, description="Earth date (YYYY-MM-DD)"),
        camera: Optional[str] = Query(None, description="Camera abbreviation, or 'all'"),
        page: Optional[int] = Query(None, description="Results page"),
        nasa: NasaService = Depends(get_nasa_service),
    ):
        params = RoverPhotoParams(sol=sol, earth_date=earth_date, camera=camera, page=page)
        return ok(await nasa.get_mars_rover_photos(rover, params))

    @app.get("/api/nasa/mars-rovers/{rover}/manifest", tags=["Mars Rovers"])
    async def get_mars_rover_manifest(rover: str, nasa: NasaService = Depends(get_nasa_service)):
        return ok(await nasa.get_mars_rover_manifest(rover))

    @app.get("/api/nasa/neo", tags=["Near-Earth Objects"])
    async def get_neo_feed(
        start_date: Optional[str] = Query(None, description="Start date (YYYY-MM-DD)"),
        end_date: Optional[str] = Query(None, description="End date (YYYY-MM-DD)"),
        detailed: Optional[bool] = Query(None, description="Include detailed data"),
        nasa: NasaService = Depends(get_nasa_service),
    ):
        """NeoWs feed. Upstream owns the date-range rules."""
        params = NeoFeedParams(start_date=start_date, end_date=end_date, detailed=detailed)
        return ok(await nasa.get_neo_feed(params))

    @app.get("/api/nasa/neo/{neo_id}", tags=["Near-Earth Objects"])
    async def get_neo(neo_id: str, nasa: NasaService = Depends(get_nasa_service)):
        return ok(await nasa.get_neo(neo_id))

    @app.get("/api/nasa/epic", tags=["EPIC"])
    async def get_epic_images(
        date: Optional[str] = Query(None, description="Date (YYYY-MM-DD); latest when omitted"),
        nasa: NasaService = Depends(get_nasa_service),
    ):
        return ok(await nasa.get_epic_images(EpicParams(date=date)))

    @app.get("/api/nasa/search", tags=["Image Library"])
    async def search_image_library(
        q: Optional[str] = Query(None, description="Search query"),
        media_type: Optional[str] = Query(None, description="image, video or audio"),
        nasa: NasaService = Depends(get_nasa_service),
    ):
        return ok(await nasa.search_image_library(ImageSearchParams.from_query(q, media_type)))

    @app.get("/api/nasa/earth", tags=["Earth"])
    async def get_earth_imagery(
        lat: Optional[float] = Query(None, description="Latitude"),
        lon: Optional[float] = Query(None, description="Longitude"),
        date: Optional[str] = Query(None, description="Date (YYYY-MM-DD)"),
        dim: Optional[float] = Query(None, description="Width and height in degrees"),
        nasa: NasaService = Depends(get_nasa_service),
    ):
        params = EarthImageryParams.from_query(lat, lon, date, dim)
        return ok(await nasa.get_earth_imagery(params))


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
