"""
NASA Space Explorer - upstream service layer.
One gateway to NASA's open APIs, shared by the server and the explorer.
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone
from functools import lru_cache
from urllib.parse import quote
import logging
import os
import re

import httpx
from pydantic import BaseModel, Field

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("space_explorer")

# === CONFIGURATION ===
# Every knob the service has, read once from the environment.

VERSION = "1.0.0"
USER_AGENT = f"NASA-Space-Explorer/{VERSION}"
DEMO_KEY = "DEMO_KEY"


class Settings:
    """Configuration that adapts to environment without complaint."""

    def __init__(self):
        self.nasa_api_key = os.getenv("NASA_API_KEY") or DEMO_KEY
        self.nasa_base_url = os.getenv("NASA_API_BASE_URL", "https://api.nasa.gov").rstrip("/")
        self.image_library_url = os.getenv("NASA_IMAGE_API_URL", "https://images-api.nasa.gov").rstrip("/")
        self.frontend_url = os.getenv("FRONTEND_URL", "http://localhost:3000")
        self.port = int(os.getenv("PORT", "3001"))
        self.environment = os.getenv("APP_ENV", "development")
        self.explorer_api_url = os.getenv("EXPLORER_API_URL", f"http://localhost:{self.port}")

        # Rate limiting - fixed window per client address
        self.rate_limit_max_requests = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))
        self.rate_limit_window_seconds = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "900"))

        self.request_timeout = 10.0
        self.version = VERSION

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def using_demo_key(self) -> bool:
        return self.nasa_api_key == DEMO_KEY


@lru_cache()
def get_settings() -> Settings:
    """Single source of truth, cached for efficiency."""
    return Settings()


def utc_timestamp() -> str:
    """ISO 8601 timestamp in UTC, millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# === RESPONSE ENVELOPE ===
# Success or failure, every answer wears the same shape.

class ErrorInfo(BaseModel):
    message: str
    code: str
    retry_after: Optional[int] = Field(default=None, alias="retryAfter")
    stack: Optional[str] = None

    model_config = {"populate_by_name": True}


class Envelope(BaseModel):
    """Uniform response: data iff success, error iff failure."""
    success: bool
    data: Any = None
    error: Optional[ErrorInfo] = None
    timestamp: str = Field(default_factory=utc_timestamp)

    @classmethod
    def ok(cls, data: Any) -> "Envelope":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, message: str, code: str, **extra) -> "Envelope":
        return cls(success=False, error=ErrorInfo(message=message, code=code, **extra))

    def to_dict(self) -> Dict[str, Any]:
        body = {"success": self.success}
        if self.success:
            body["data"] = self.data
        else:
            body["error"] = self.error.model_dump(by_alias=True, exclude_none=True)
        body["timestamp"] = self.timestamp
        return body


# === ERRORS ===

class InvalidParameterError(Exception):
    """Client input rejected before any upstream call."""

    def __init__(self, message: str, code: str = "INVALID_PARAMETER", status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


class NasaAPIError(Exception):
    """Upstream call failed. Detail is logged, never relayed to callers."""

    def __init__(self, operation: "Operation", status_code: int = 500, upstream_status: Optional[int] = None):
        super().__init__(operation.failure_message)
        self.operation = operation
        self.message = operation.failure_message
        self.code = operation.error_code
        self.status_code = status_code
        self.upstream_status = upstream_status


class Operation:
    """A logical upstream operation and how its failures are named."""

    def __init__(self, name: str, error_code: str, failure_message: str):
        self.name = name
        self.error_code = error_code
        self.failure_message = failure_message

    def __repr__(self) -> str:
        return f"Operation({self.name!r})"


APOD = Operation("apod", "APOD_FETCH_ERROR", "Failed to fetch Astronomy Picture of the Day")
ROVER_PHOTOS = Operation("mars_rover_photos", "MARS_ROVER_FETCH_ERROR", "Failed to fetch Mars rover photos")
ROVER_MANIFEST = Operation("mars_rover_manifest", "MARS_ROVER_MANIFEST_ERROR", "Failed to fetch Mars rover manifest")
NEO_FEED = Operation("neo_feed", "NEO_FETCH_ERROR", "Failed to fetch Near Earth Objects")
NEO_LOOKUP = Operation("neo_lookup", "NEO_BY_ID_ERROR", "Failed to fetch Near Earth Object details")
EPIC = Operation("epic", "EPIC_FETCH_ERROR", "Failed to fetch EPIC Earth images")
IMAGE_SEARCH = Operation("image_search", "IMAGE_LIBRARY_SEARCH_ERROR", "Failed to search NASA image library")
EARTH_IMAGERY = Operation("earth_imagery", "EARTH_IMAGERY_ERROR", "Failed to fetch Earth imagery")
HEALTH_PROBE = Operation("health_probe", "HEALTH_CHECK_ERROR", "Health check failed")


# === REQUEST MODELS ===
# Each operation lists what it understands. Anything else stays behind.

ROVERS = ("curiosity", "opportunity", "spirit")
NEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9]+$")


def validate_rover(rover: Optional[str]) -> str:
    """Accept only the three rovers the photo API knows about."""
    name = (rover or "").strip().lower()
    if name not in ROVERS:
        raise InvalidParameterError(
            "Invalid rover name. Must be curiosity, opportunity, or spirit",
            code="INVALID_ROVER",
        )
    return name


class QueryModel(BaseModel):
    """Base for parameter models. Absent values never reach upstream."""

    def to_query(self) -> Dict[str, Any]:
        query = {}
        for key, value in self.model_dump(exclude_none=True).items():
            if isinstance(value, bool):
                value = "true" if value else "false"
            query[key] = value
        return query


class ApodParams(QueryModel):
    """Picture of the day. Combinations are upstream's business."""
    date: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    count: Optional[int] = Field(default=None, ge=1)
    thumbs: Optional[bool] = None

    def to_query(self) -> Dict[str, Any]:
        query = super().to_query()
        if query.get("thumbs") != "true":
            query.pop("thumbs", None)
        return query


class RoverPhotoParams(QueryModel):
    sol: Optional[int] = Field(default=None, ge=0)
    earth_date: Optional[str] = None
    camera: Optional[str] = None
    page: Optional[int] = Field(default=None, ge=1)

    def to_query(self) -> Dict[str, Any]:
        query = super().to_query()
        camera = query.get("camera")
        if camera is not None and (not camera.strip() or camera.lower() == "all"):
            query.pop("camera")
        return query


class NeoFeedParams(QueryModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    detailed: Optional[bool] = None


class EpicParams(QueryModel):
    """The date picks the route, it is never sent as a parameter."""
    date: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")

    def path(self) -> str:
        if self.date:
            return f"/EPIC/api/natural/date/{self.date}"
        return "/EPIC/api/natural/images"


class ImageSearchParams(QueryModel):
    q: str
    media_type: Optional[str] = "image"

    @classmethod
    def from_query(cls, q: Optional[str], media_type: Optional[str] = None) -> "ImageSearchParams":
        if not q or not q.strip():
            raise InvalidParameterError("Search query is required", code="MISSING_QUERY")
        return cls(q=q.strip(), media_type=media_type or "image")


class EarthImageryParams(QueryModel):
    lat: float
    lon: float
    date: Optional[str] = None
    dim: float = 0.1

    @classmethod
    def from_query(
        cls,
        lat: Optional[float],
        lon: Optional[float],
        date: Optional[str] = None,
        dim: Optional[float] = None,
    ) -> "EarthImageryParams":
        if lat is None or lon is None:
            raise InvalidParameterError("Latitude and longitude are required", code="MISSING_COORDINATES")
        return cls(lat=lat, lon=lon, date=date, dim=0.1 if dim is None else dim)


# === NASA API CLIENT ===
# Bridge to external knowledge

def epic_archive_url(image: str, date: str, base_url: str, api_key: Optional[str] = None) -> str:
    """Archive URL for one EPIC frame. `date` may carry a time part."""
    day = date.split(" ")[0].replace("-", "/")
    url = f"{base_url}/EPIC/archive/natural/{day}/png/{image}.png"
    return f"{url}?api_key={api_key}" if api_key else url


def build_http_client(settings: Optional[Settings] = None, **kwargs) -> httpx.AsyncClient:
    """Create the shared AsyncClient with the service's timeout and headers."""
    settings = settings or get_settings()
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.request_timeout),
        headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        **kwargs,
    )


def _strip_api_key(url: httpx.URL) -> str:
    return str(url.copy_remove_param("api_key"))


class NasaService:
    """Client for NASA's open APIs.
    Injects the key, relays the body, names the failure."""

    def __init__(self, client: httpx.AsyncClient, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.client = client
        self.base_url = self.settings.nasa_base_url
        self.api_key = self.settings.nasa_api_key

    async def _get(self, operation: Operation, url: str, params: Optional[dict] = None) -> Any:
        """GET a NASA endpoint and return its JSON body unchanged."""
        params = dict(params or {})
        params["api_key"] = self.api_key

        try:
            response = await self.client.get(url, params=params)
        except httpx.HTTPError as e:
            logger.error(f"NASA API transport error during {operation.name}: {e!r}")
            raise NasaAPIError(operation) from e

        if not response.is_success:
            logger.error(f"NASA API error during {operation.name}: {response.status_code} - {response.text[:500]}")
            status_code = response.status_code if 400 <= response.status_code < 500 else 500
            raise NasaAPIError(operation, status_code=status_code, upstream_status=response.status_code)

        content_type = response.headers.get("content-type", "")
        if content_type.startswith("image/"):
            return {"url": _strip_api_key(response.url), "content_type": content_type.split(";")[0]}

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"NASA API returned an unreadable body during {operation.name} ({content_type})")
            raise NasaAPIError(operation) from e

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def get_apod(self, params: Optional[ApodParams] = None) -> Any:
        """Astronomy Picture of the Day. One record, or a list for ranges and counts."""
        params = params or ApodParams()
        return await self._get(APOD, self._url("/planetary/apod"), params.to_query())

    async def get_mars_rover_photos(self, rover: str, params: Optional[RoverPhotoParams] = None) -> Any:
        rover = validate_rover(rover)
        params = params or RoverPhotoParams()
        return await self._get(
            ROVER_PHOTOS,
            self._url(f"/mars-photos/api/v1/rovers/{rover}/photos"),
            params.to_query(),
        )

    async def get_mars_rover_manifest(self, rover: str) -> Any:
        rover = validate_rover(rover)
        return await self._get(ROVER_MANIFEST, self._url(f"/mars-photos/api/v1/manifests/{rover}"))

    async def get_neo_feed(self, params: Optional[NeoFeedParams] = None) -> Any:
        params = params or NeoFeedParams()
        return await self._get(NEO_FEED, self._url("/neo/rest/v1/feed"), params.to_query())

    async def get_neo(self, neo_id: str) -> Any:
        if not neo_id or not neo_id.strip():
            raise InvalidParameterError("NEO ID is required", code="MISSING_NEO_ID")
        neo_id = neo_id.strip()
        if not NEO_ID_PATTERN.match(neo_id):
            raise InvalidParameterError("NEO ID must be alphanumeric", code="INVALID_PARAMETER")
        return await self._get(NEO_LOOKUP, self._url(f"/neo/rest/v1/neo/{quote(neo_id, safe='')}"))

    async def get_epic_images(self, params: Optional[EpicParams] = None) -> Any:
        """EPIC natural-color images. No date means the latest set."""
        params = params or EpicParams()
        return await self._get(EPIC, self._url(params.path()))

    def epic_image_url(self, image: str, date: str) -> str:
        return epic_archive_url(image, date, self.base_url, self.api_key)

    async def search_image_library(self, params: ImageSearchParams) -> Any:
        return await self._get(IMAGE_SEARCH, f"{self.settings.image_library_url}/search", params.to_query())

    async def get_earth_imagery(self, params: EarthImageryParams) -> Any:
        return await self._get(EARTH_IMAGERY, self._url("/planetary/earth/imagery"), params.to_query())

    async def health_check(self) -> bool:
        """Cheap probe. Any well-formed reply means NASA is listening."""
        try:
            await self._get(HEALTH_PROBE, self._url("/planetary/apod"), {"thumbs": "true"})
            return True
        except NasaAPIError:
            logger.warning("NASA API health check failed")
            return False
