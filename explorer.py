"""
NASA Space Explorer - terminal explorer.
Same data the browser shows, drawn with Rich in a terminal.
"""

from typing import Optional, Dict, Any, List, Callable, Awaitable
from dataclasses import dataclass
import asyncio

import httpx
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from nasa_service import (
    Settings, get_settings, logger,
    NasaService, NasaAPIError, InvalidParameterError, build_http_client,
    ApodParams, RoverPhotoParams, NeoFeedParams, EpicParams,
    ImageSearchParams, EarthImageryParams,
    validate_rover, epic_archive_url,
)

console = Console()

# === CATALOGS ===
# What the selectors offer.

ROVER_CATALOG = [
    {"name": "curiosity", "display": "Curiosity", "description": "Active since 2012", "status": "Active"},
    {"name": "opportunity", "display": "Opportunity", "description": "Mission completed 2018", "status": "Complete"},
    {"name": "spirit", "display": "Spirit", "description": "Mission completed 2010", "status": "Complete"},
]

CAMERAS = {
    "all": "All Cameras",
    "fhaz": "Front Hazard Avoidance Camera",
    "rhaz": "Rear Hazard Avoidance Camera",
    "mast": "Mast Camera",
    "chemcam": "Chemistry and Camera Complex",
    "mahli": "Mars Hand Lens Imager",
    "mardi": "Mars Descent Imager",
    "navcam": "Navigation Camera",
    "pancam": "Panoramic Camera",
    "minites": "Miniature Thermal Emission Spectrometer",
}

SOURCES = ("backend", "direct", "mock")

# === DISPLAY CONVERSIONS ===

LUNAR_DISTANCE_KM = 384_400.0
CLOSE_APPROACH_AU = 0.05


def km_to_lunar_distances(km: float) -> float:
    return float(km) / LUNAR_DISTANCE_KM


def format_distance(kilometers) -> str:
    """1.23M km, 456K km or 789 km."""
    km = float(kilometers)
    if km > 1_000_000:
        return f"{km / 1_000_000:.2f}M km"
    if km > 1_000:
        return f"{km / 1_000:.0f}K km"
    return f"{km:.0f} km"


def format_lunar(lunar) -> str:
    return f"{float(lunar):.1f} lunar"


def format_coordinate(coord: float) -> str:
    return f"{coord:.2f}"


def format_position(distance: float) -> str:
    """J2000 component in thousands of km."""
    return f"{distance / 1000:.0f}"


def closest_approach(neo: dict) -> Optional[dict]:
    approaches = neo.get("close_approach_data") or []
    if not approaches:
        return None
    return min(approaches, key=lambda a: float(a["miss_distance"]["astronomical"]))


def hazard_level(neo: dict) -> str:
    """high if flagged, medium inside 0.05 AU, otherwise low."""
    if neo.get("is_potentially_hazardous_asteroid"):
        return "high"
    closest = closest_approach(neo)
    if closest and float(closest["miss_distance"]["astronomical"]) < CLOSE_APPROACH_AU:
        return "medium"
    return "low"


def flatten_neo_feed(feed: dict, hazardous_only: bool = False) -> List[dict]:
    """Date-keyed feed to one list, in date order."""
    by_date = feed.get("near_earth_objects") or {}
    neos = [neo for day in sorted(by_date) for neo in by_date[day]]
    if hazardous_only:
        neos = [neo for neo in neos if neo.get("is_potentially_hazardous_asteroid")]
    return neos


def format_diameter_km(neo: dict) -> str:
    km = (neo.get("estimated_diameter") or {}).get("kilometers") or {}
    if "estimated_diameter_min" not in km:
        return "unknown"
    return f"{km['estimated_diameter_min']:.3f} - {km['estimated_diameter_max']:.3f} km"


# === VIEW STATE ===

@dataclass
class ViewState:
    """Loading, error or data. Exactly one at a time."""
    status: str = "loading"
    data: Any = None
    error: Optional[str] = None
    code: Optional[str] = None

    @property
    def is_loading(self) -> bool:
        return self.status == "loading"

    @property
    def is_error(self) -> bool:
        return self.status == "error"

    @property
    def is_ready(self) -> bool:
        return self.status == "ready"


class ExplorerError(Exception):
    """A view could not get its data."""

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status


async def load_view(fetch: Awaitable) -> ViewState:
    try:
        return ViewState(status="ready", data=await fetch)
    except ExplorerError as e:
        logger.warning(f"View failed to load: {e.code} - {e.message}")
        return ViewState(status="error", error=e.message, code=e.code)
    except ValidationError as e:
        message = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        return ViewState(status="error", error=f"Invalid parameter {message}", code="INVALID_PARAMETER")


# === MOCK DATA ===
# Offline development. Shapes match the live API.

_MOCK_ROVER = {
    "id": 5, "name": "Curiosity", "landing_date": "2012-08-05", "launch_date": "2011-11-26",
    "status": "active", "max_sol": 4000, "max_date": "2025-01-07", "total_photos": 635000,
    "cameras": [
        {"name": "FHAZ", "full_name": "Front Hazard Avoidance Camera"},
        {"name": "RHAZ", "full_name": "Rear Hazard Avoidance Camera"},
        {"name": "MAST", "full_name": "Mast Camera"},
    ],
}


def _mock_photo(photo_id: int, camera_id: int, name: str, full_name: str) -> dict:
    return {
        "id": photo_id,
        "sol": 1000,
        "camera": {"id": camera_id, "name": name, "rover_id": 5, "full_name": full_name},
        "img_src": f"https://mars.nasa.gov/msl-raw-images/msss/01000/mcam/1000MC00446313{photo_id}E01_DXXX.jpg",
        "earth_date": "2015-05-30",
        "rover": _MOCK_ROVER,
    }


def _mock_neo(neo_id: str, name: str, hazardous: bool, au: str, lunar: str, km: str, kms: str,
              dmin: float, dmax: float, day: str) -> dict:
    return {
        "id": neo_id,
        "neo_reference_id": neo_id,
        "name": name,
        "nasa_jpl_url": f"http://ssd.jpl.nasa.gov/sbdb.cgi?sstr={neo_id}",
        "absolute_magnitude_h": 20.84,
        "estimated_diameter": {"kilometers": {"estimated_diameter_min": dmin, "estimated_diameter_max": dmax}},
        "is_potentially_hazardous_asteroid": hazardous,
        "close_approach_data": [{
            "close_approach_date": day,
            "close_approach_date_full": f"{day} 12:00",
            "relative_velocity": {"kilometers_per_second": kms},
            "miss_distance": {"astronomical": au, "lunar": lunar, "kilometers": km},
            "orbiting_body": "Earth",
        }],
        "is_sentry_object": False,
    }


MOCK_DATA: Dict[str, Any] = {
    "apod": {
        "date": "2025-01-07",
        "explanation": "A magnificent spiral galaxy some 3 million light-years away in Triangulum.",
        "hdurl": "https://apod.nasa.gov/apod/image/2412/M33_HubbleSpitzer_4000.jpg",
        "media_type": "image",
        "service_version": "v1",
        "title": "M33: The Triangulum Galaxy",
        "url": "https://apod.nasa.gov/apod/image/2412/M33_HubbleSpitzer_1024.jpg",
        "copyright": "NASA, ESA, Hubble Space Telescope",
    },
    "photos": {"photos": [
        _mock_photo(424905, 20, "FHAZ", "Front Hazard Avoidance Camera"),
        _mock_photo(424906, 21, "RHAZ", "Rear Hazard Avoidance Camera"),
        _mock_photo(424907, 22, "MAST", "Mast Camera"),
    ]},
    "manifest": {"photo_manifest": {
        "name": "Curiosity", "landing_date": "2012-08-05", "launch_date": "2011-11-26",
        "status": "active", "max_sol": 4000, "max_date": "2025-01-07", "total_photos": 635000,
    }},
    "neo": {
        "element_count": 2,
        "near_earth_objects": {
            "2025-01-07": [
                _mock_neo("3542519", "(2010 PK9)", True, "0.0312", "12.1", "4667361.2", "14.76",
                          0.170, 0.381, "2025-01-07"),
            ],
            "2025-01-08": [
                _mock_neo("54016476", "(2020 GR1)", False, "0.2861", "111.3", "42805184.4", "8.12",
                          0.021, 0.047, "2025-01-08"),
            ],
        },
    },
    "epic": [{
        "identifier": "20250107003633",
        "caption": "This image was taken by NASA's EPIC camera onboard the NOAA DSCOVR spacecraft",
        "image": "epic_1b_20250107003633",
        "version": "03",
        "date": "2025-01-07 00:31:45",
        "centroid_coordinates": {"lat": -22.72, "lon": 167.38},
        "dscovr_j2000_position": {"x": -1368296.11, "y": 627264.93, "z": 144830.25},
        "lunar_j2000_position": {"x": -183424.61, "y": 316102.38, "z": 162011.75},
        "sun_j2000_position": {"x": -30226917.55, "y": 131133946.68, "z": 56845879.21},
        "attitude_quaternions": {"q0": -0.32, "q1": 0.23, "q2": 0.13, "q3": 0.91},
    }],
    "search": {"collection": {"items": [{
        "href": "https://images-assets.nasa.gov/image/PIA12235/collection.json",
        "data": [{"nasa_id": "PIA12235", "title": "Full Moon", "media_type": "image",
                  "date_created": "2009-09-24T18:00:22Z", "center": "JPL"}],
    }], "metadata": {"total_hits": 1}}},
}


# === DATA FETCHING ===

class ExplorerClient:
    """One way to ask for data, three places to get it from.

    backend: this project's API, envelope unwrapped.
    direct:  NASA itself through NasaService. No rate limit in between.
    mock:    canned records, no network at all.
    """

    def __init__(
        self,
        source: str = "backend",
        api_url: Optional[str] = None,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if source not in SOURCES:
            raise ValueError(f"Unknown source {source!r}; expected one of {', '.join(SOURCES)}")
        self.source = source
        self.settings = settings or get_settings()
        self.api_url = (api_url or self.settings.explorer_api_url).rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client
        if source != "mock" and self._client is None:
            self._client = build_http_client(self.settings)
        self._nasa = NasaService(self._client, self.settings) if source == "direct" else None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        if self._owns_client and self._client is not None:
            await self._client.aclose()

    async def _backend(self, path: str, params: Optional[dict] = None) -> Any:
        query = {}
        for key, value in (params or {}).items():
            if value is None:
                continue
            query[key] = ("true" if value else "false") if isinstance(value, bool) else value

        try:
            response = await self._client.get(f"{self.api_url}{path}", params=query)
        except httpx.HTTPError as e:
            raise ExplorerError("Network error. Please check your connection.", code="NETWORK_ERROR") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code == 429:
            raise ExplorerError("Too many requests. Please try again later.", "RATE_LIMIT_EXCEEDED", 429)
        if not isinstance(body, dict) or not body.get("success"):
            error = body.get("error") if isinstance(body, dict) else None
            error = error or {}
            raise ExplorerError(
                error.get("message") or "An unexpected error occurred.",
                error.get("code"),
                response.status_code,
            )
        return body.get("data")

    async def _direct(self, call: Callable[[NasaService], Awaitable]) -> Any:
        try:
            return await call(self._nasa)
        except (NasaAPIError, InvalidParameterError) as e:
            raise ExplorerError(e.message, e.code, e.status_code) from e

    async def _fetch(self, path: str, params: Optional[dict], direct: Callable[[NasaService], Awaitable],
                     mock: Callable[[], Any]) -> Any:
        if self.source == "backend":
            return await self._backend(path, params)
        if self.source == "direct":
            return await self._direct(direct)
        try:
            return mock()
        except InvalidParameterError as e:
            raise ExplorerError(e.message, e.code, e.status_code) from e

    async def health(self) -> bool:
        if self.source == "mock":
            return True
        if self.source == "direct":
            return await self._nasa.health_check()
        try:
            await self._backend("/health")
            return True
        except ExplorerError:
            return False

    async def apod(self, date: Optional[str] = None, start_date: Optional[str] = None,
                   end_date: Optional[str] = None, count: Optional[int] = None,
                   thumbs: Optional[bool] = None) -> Any:
        params = ApodParams(date=date, start_date=start_date, end_date=end_date, count=count, thumbs=thumbs)

        def mock():
            if count or start_date:
                return [MOCK_DATA["apod"]]
            return MOCK_DATA["apod"]

        return await self._fetch("/api/nasa/apod", params.to_query(), lambda n: n.get_apod(params), mock)

    async def rover_photos(self, rover: str, sol: Optional[int] = None, earth_date: Optional[str] = None,
                           camera: Optional[str] = None, page: Optional[int] = None) -> Any:
        params = RoverPhotoParams(sol=sol, earth_date=earth_date, camera=camera, page=page)

        def mock():
            validate_rover(rover)
            photos = MOCK_DATA["photos"]["photos"]
            wanted = params.to_query().get("camera")
            if wanted:
                photos = [p for p in photos if p["camera"]["name"].lower() == wanted.lower()]
            return {"photos": photos}

        return await self._fetch(
            f"/api/nasa/mars-rovers/{rover}/photos", params.to_query(),
            lambda n: n.get_mars_rover_photos(rover, params), mock,
        )

    async def rover_manifest(self, rover: str) -> Any:
        def mock():
            validate_rover(rover)
            return MOCK_DATA["manifest"]

        return await self._fetch(
            f"/api/nasa/mars-rovers/{rover}/manifest", None,
            lambda n: n.get_mars_rover_manifest(rover), mock,
        )

    async def neo_feed(self, start_date: Optional[str] = None, end_date: Optional[str] = None,
                       detailed: Optional[bool] = None) -> Any:
        params = NeoFeedParams(start_date=start_date, end_date=end_date, detailed=detailed)
        return await self._fetch("/api/nasa/neo", params.to_query(), lambda n: n.get_neo_feed(params),
                                 lambda: MOCK_DATA["neo"])

    async def neo(self, neo_id: str) -> Any:
        def mock():
            for candidate in flatten_neo_feed(MOCK_DATA["neo"]):
                if candidate["id"] == neo_id:
                    return candidate
            raise InvalidParameterError(f"Object {neo_id} not found", code="NEO_BY_ID_ERROR", status_code=404)

        return await self._fetch(f"/api/nasa/neo/{neo_id}", None, lambda n: n.get_neo(neo_id), mock)

    async def epic(self, date: Optional[str] = None) -> Any:
        params = EpicParams(date=date)
        return await self._fetch("/api/nasa/epic", params.model_dump(exclude_none=True),
                                 lambda n: n.get_epic_images(params), lambda: MOCK_DATA["epic"])

    async def search(self, q: Optional[str], media_type: Optional[str] = None) -> Any:
        if self.source == "backend":
            return await self._backend("/api/nasa/search", {"q": q, "media_type": media_type})

        def mock():
            ImageSearchParams.from_query(q, media_type)
            return MOCK_DATA["search"]

        return await self._fetch(
            "/api/nasa/search", None,
            lambda n: n.search_image_library(ImageSearchParams.from_query(q, media_type)), mock,
        )

    async def earth(self, lat: Optional[float], lon: Optional[float], date: Optional[str] = None,
                    dim: Optional[float] = None) -> Any:
        if self.source == "backend":
            return await self._backend("/api/nasa/earth", {"lat": lat, "lon": lon, "date": date, "dim": dim})

        def mock():
            params = EarthImageryParams.from_query(lat, lon, date, dim)
            return {"url": f"{self.settings.nasa_base_url}/planetary/earth/imagery?lat={params.lat}&lon={params.lon}",
                    "content_type": "image/png"}

        return await self._fetch(
            "/api/nasa/earth", None,
            lambda n: n.get_earth_imagery(EarthImageryParams.from_query(lat, lon, date, dim)), mock,
        )

    def epic_image_url(self, record: dict) -> str:
        key = self.settings.nasa_api_key if self.source != "mock" else None
        return epic_archive_url(record["image"], record["date"], self.settings.nasa_base_url, key)


# === RENDERING ===

HAZARD_STYLES = {"high": "bold red", "medium": "yellow", "low": "green"}


def render_apod(data: Any):
    records = data if isinstance(data, list) else [data]
    for record in records:
        lines = [f"[bold]{record.get('date', '')}[/bold]  ({record.get('media_type', 'image')})"]
        if record.get("copyright"):
            lines.append(f"(c) {record['copyright'].strip()}")
        lines.append("")
        lines.append(record.get("explanation", ""))
        lines.append("")
        lines.append(record.get("hdurl") or record.get("url", ""))
        console.print(Panel("\n".join(lines), title=record.get("title", "Picture of the Day")))


def render_photos(data: Any):
    photos = (data or {}).get("photos", [])
    if not photos:
        console.print("[yellow]No photos found for this selection.[/yellow]")
        return
    table = Table(title=f"Mars rover photos ({len(photos)})")
    table.add_column("ID", no_wrap=True)
    table.add_column("Sol", justify="right")
    table.add_column("Camera")
    table.add_column("Earth date", no_wrap=True)
    table.add_column("Image")
    for photo in photos:
        table.add_row(str(photo["id"]), str(photo["sol"]), photo["camera"]["full_name"],
                      photo["earth_date"], photo["img_src"])
    console.print(table)


def render_manifest(data: Any):
    manifest = (data or {}).get("photo_manifest", data or {})
    lines = [
        f"Status: {manifest.get('status', 'unknown')}",
        f"Launched: {manifest.get('launch_date', '?')}   Landed: {manifest.get('landing_date', '?')}",
        f"Latest sol: {manifest.get('max_sol', '?')} ({manifest.get('max_date', '?')})",
        f"Total photos: {manifest.get('total_photos', '?')}",
    ]
    console.print(Panel("\n".join(lines), title=manifest.get("name", "Rover manifest")))


def render_neos(neos: List[dict], title: str):
    if not neos:
        console.print("[yellow]No near-Earth objects in this range.[/yellow]")
        return
    table = Table(title=title)
    table.add_column("Name")
    table.add_column("Hazard", no_wrap=True)
    table.add_column("Approach", no_wrap=True)
    table.add_column("Miss distance")
    table.add_column("Velocity", justify="right")
    table.add_column("Diameter")
    for neo in neos:
        level = hazard_level(neo)
        closest = closest_approach(neo)
        if closest:
            miss = closest["miss_distance"]
            distance = f"{format_distance(miss['kilometers'])} ({format_lunar(miss['lunar'])})"
            velocity = f"{float(closest['relative_velocity']['kilometers_per_second']):.2f} km/s"
            when = closest["close_approach_date"]
        else:
            distance, velocity, when = "-", "-", "-"
        table.add_row(neo.get("name", neo.get("id", "?")), f"[{HAZARD_STYLES[level]}]{level}[/]",
                      when, distance, velocity, format_diameter_km(neo))
    console.print(table)


def render_epic(data: Any, client: ExplorerClient):
    records = data or []
    if not records:
        console.print("[yellow]No EPIC images for this date.[/yellow]")
        return
    table = Table(title=f"EPIC Earth images ({len(records)})")
    table.add_column("Captured", no_wrap=True)
    table.add_column("Centroid")
    table.add_column("DSCOVR (K km)")
    table.add_column("Image")
    for record in records:
        centroid = record.get("centroid_coordinates", {})
        pos = record.get("dscovr_j2000_position", {})
        table.add_row(
            record.get("date", ""),
            f"{format_coordinate(centroid.get('lat', 0.0))}, {format_coordinate(centroid.get('lon', 0.0))}",
            " / ".join(format_position(pos.get(axis, 0.0)) for axis in ("x", "y", "z")),
            client.epic_image_url(record),
        )
    console.print(table)


def render_search(data: Any):
    items = ((data or {}).get("collection") or {}).get("items", [])
    if not items:
        console.print("[yellow]Nothing matched that search.[/yellow]")
        return
    table = Table(title=f"NASA Image Library ({len(items)})")
    table.add_column("NASA ID", no_wrap=True)
    table.add_column("Title")
    table.add_column("Type")
    table.add_column("Created", no_wrap=True)
    for item in items:
        meta = (item.get("data") or [{}])[0]
        table.add_row(meta.get("nasa_id", ""), meta.get("title", ""), meta.get("media_type", ""),
                      (meta.get("date_created") or "")[:10])
    console.print(table)


def render_earth(data: Any):
    if isinstance(data, dict) and "url" in data:
        console.print(Panel(f"{data['url']}\n{data.get('content_type', '')}", title="Earth imagery"))
    else:
        console.print_json(data=data)


# === CLI ===

cli = typer.Typer(help="Explore NASA's open data from the terminal")


@cli.callback()
def main(
    ctx: typer.Context,
    source: str = typer.Option("backend", help="Data source: backend, direct or mock"),
    api_url: Optional[str] = typer.Option(None, help="Backend base URL (defaults to EXPLORER_API_URL)"),
):
    if source not in SOURCES:
        raise typer.BadParameter(f"expected one of {', '.join(SOURCES)}", param_hint="--source")
    ctx.obj = {"source": source, "api_url": api_url}


def _show(ctx: typer.Context, label: str, fetch: Callable[[ExplorerClient], Awaitable],
          render: Callable[[Any, ExplorerClient], None]):
    """Fetch inside a spinner, then draw the data or the error."""

    async def run():
        async with ExplorerClient(ctx.obj["source"], ctx.obj["api_url"]) as client:
            with console.status(f"Loading {label}..."):
                state = await load_view(fetch(client))
            if state.is_ready:
                render(state.data, client)
            return state

    state = asyncio.run(run())
    if state.is_error:
        suffix = f" ({state.code})" if state.code else ""
        console.print(f"[red]Error:[/red] {state.error}{suffix}")
        raise typer.Exit(code=1)


@cli.command()
def health(ctx: typer.Context):
    """Is the data source answering?"""

    async def run():
        async with ExplorerClient(ctx.obj["source"], ctx.obj["api_url"]) as client:
            return await client.health()

    healthy = asyncio.run(run())
    if healthy:
        console.print(f"[green]healthy[/green] ({ctx.obj['source']})")
    else:
        console.print(f"[red]unhealthy[/red] ({ctx.obj['source']})")
        raise typer.Exit(code=1)


@cli.command()
def apod(
    ctx: typer.Context,
    date: Optional[str] = typer.Option(None, help="Date YYYY-MM-DD"),
    start_date: Optional[str] = typer.Option(None, help="Range start YYYY-MM-DD"),
    end_date: Optional[str] = typer.Option(None, help="Range end YYYY-MM-DD"),
    count: Optional[int] = typer.Option(None, min=1, help="Random pictures"),
    thumbs: bool = typer.Option(False, help="Include video thumbnails"),
):
    """Astronomy Picture of the Day."""
    _show(ctx, "picture of the day",
          lambda c: c.apod(date=date, start_date=start_date, end_date=end_date, count=count, thumbs=thumbs),
          lambda data, _: render_apod(data))


@cli.command()
def rovers(
    ctx: typer.Context,
    rover: str = typer.Argument("curiosity", help="curiosity, opportunity or spirit"),
    sol: Optional[int] = typer.Option(None, min=0, help="Martian day"),
    earth_date: Optional[str] = typer.Option(None, help="Earth date YYYY-MM-DD"),
    camera: str = typer.Option("all", help="Camera: " + ", ".join(CAMERAS)),
    page: int = typer.Option(1, min=1, help="Results page"),
):
    """Mars rover photos. Sol 1000 when neither sol nor date is given."""
    if sol is None and earth_date is None:
        sol = 1000
    _show(ctx, f"{rover} photos",
          lambda c: c.rover_photos(rover, sol=sol, earth_date=earth_date, camera=camera, page=page),
          lambda data, _: render_photos(data))


@cli.command()
def manifest(ctx: typer.Context, rover: str = typer.Argument("curiosity")):
    """Mission manifest for one rover."""
    _show(ctx, f"{rover} manifest", lambda c: c.rover_manifest(rover), lambda data, _: render_manifest(data))


@cli.command()
def neo(
    ctx: typer.Context,
    start_date: Optional[str] = typer.Option(None, help="Start YYYY-MM-DD"),
    end_date: Optional[str] = typer.Option(None, help="End YYYY-MM-DD"),
    hazardous_only: bool = typer.Option(False, help="Only potentially hazardous objects"),
):
    """Near-Earth objects passing by."""

    def render(data, _):
        neos = flatten_neo_feed(data or {}, hazardous_only=hazardous_only)
        hazardous = sum(1 for n in flatten_neo_feed(data or {}) if n.get("is_potentially_hazardous_asteroid"))
        render_neos(neos, f"Near-Earth objects ({len(neos)}, {hazardous} hazardous)")

    _show(ctx, "near-Earth objects", lambda c: c.neo_feed(start_date=start_date, end_date=end_date), render)


@cli.command()
def asteroid(ctx: typer.Context, neo_id: str = typer.Argument(..., help="NeoWs object id")):
    """One near-Earth object by id."""
    _show(ctx, f"object {neo_id}", lambda c: c.neo(neo_id),
          lambda data, _: render_neos([data], data.get("name", neo_id)))


@cli.command()
def epic(ctx: typer.Context, date: Optional[str] = typer.Option(None, help="Date YYYY-MM-DD; latest if omitted")):
    """EPIC images of the whole Earth."""
    _show(ctx, "Earth images", lambda c: c.epic(date=date), render_epic)


@cli.command()
def search(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Search phrase"),
    media_type: Optional[str] = typer.Option(None, help="image, video or audio"),
):
    """Search the NASA Image and Video Library."""
    _show(ctx, f"results for {query!r}", lambda c: c.search(query, media_type), lambda data, _: render_search(data))


@cli.command()
def earth(
    ctx: typer.Context,
    lat: float = typer.Option(..., help="Latitude"),
    lon: float = typer.Option(..., help="Longitude"),
    date: Optional[str] = typer.Option(None, help="Date YYYY-MM-DD"),
    dim: Optional[float] = typer.Option(None, help="Width and height in degrees (default 0.1)"),
):
    """Landsat imagery for a point on Earth."""
    _show(ctx, "Earth imagery", lambda c: c.earth(lat, lon, date=date, dim=dim), lambda data, _: render_earth(data))


@cli.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: Optional[int] = typer.Option(None, help="Port (defaults to PORT)"),
):
    """Run the API server."""
    import uvicorn
    uvicorn.run("main:app", host=host, port=port or get_settings().port)


if __name__ == "__main__":  # pragma: no cover
    cli()
