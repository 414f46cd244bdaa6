import asyncio

import httpx
import pytest
from typer.testing import CliRunner

from explorer import (
    ExplorerClient, ExplorerError, ViewState, MOCK_DATA,
    cli, closest_approach, flatten_neo_feed, format_coordinate, format_diameter_km,
    format_distance, format_lunar, format_position, hazard_level, km_to_lunar_distances, load_view,
)
from main import create_app, FixedWindowRateLimiter
from conftest import TEST_KEY, make_settings

runner = CliRunner()


def run(coro):
    return asyncio.run(coro)


def neo_at(au, hazardous=False):
    return {
        "is_potentially_hazardous_asteroid": hazardous,
        "close_approach_data": [{"miss_distance": {"astronomical": str(au)}}],
    }


# === formatters ===

def test_distance_labels():
    assert format_distance("4667361.2") == "4.67M km"
    assert format_distance(45678) == "46K km"
    assert format_distance(789.4) == "789 km"


def test_lunar_conversion():
    assert km_to_lunar_distances(384400) == pytest.approx(1.0)
    assert km_to_lunar_distances(768800) == pytest.approx(2.0)
    assert format_lunar("12.06") == "12.1 lunar"


def test_epic_display_values():
    assert format_coordinate(-22.7189) == "-22.72"
    assert format_position(-1368296.11) == "-1368"


def test_hazard_levels():
    assert hazard_level(neo_at(0.3, hazardous=True)) == "high"
    assert hazard_level(neo_at(0.01)) == "medium"
    assert hazard_level(neo_at(0.3)) == "low"
    assert hazard_level({"close_approach_data": []}) == "low"


def test_closest_approach_picks_minimum():
    neo = {"close_approach_data": [
        {"miss_distance": {"astronomical": "0.4"}},
        {"miss_distance": {"astronomical": "0.02"}},
    ]}
    assert closest_approach(neo)["miss_distance"]["astronomical"] == "0.02"


def test_flatten_feed():
    neos = flatten_neo_feed(MOCK_DATA["neo"])
    assert [n["id"] for n in neos] == ["3542519", "54016476"]
    hazardous = flatten_neo_feed(MOCK_DATA["neo"], hazardous_only=True)
    assert [n["id"] for n in hazardous] == ["3542519"]
    assert flatten_neo_feed({}) == []


def test_diameter_label():
    neo = flatten_neo_feed(MOCK_DATA["neo"])[0]
    assert format_diameter_km(neo) == "0.170 - 0.381 km"
    assert format_diameter_km({}) == "unknown"


# === view state ===

def test_load_view_ready_and_error():
    async def good():
        return {"ok": 1}

    async def bad():
        raise ExplorerError("nope", code="X")

    ready = run(load_view(good()))
    assert ready.is_ready and ready.data == {"ok": 1}

    failed = run(load_view(bad()))
    assert failed.is_error and failed.error == "nope" and failed.code == "X"

    assert ViewState().is_loading


# === sources ===

def test_unknown_source():
    with pytest.raises(ValueError):
        ExplorerClient("carrier-pigeon", settings=make_settings())


def test_mock_source():
    async def go():
        async with ExplorerClient("mock", settings=make_settings()) as client:
            apod = await client.apod()
            photos = await client.rover_photos("curiosity", sol=1000, camera="mast")
            assert await client.health()
            with pytest.raises(ExplorerError) as exc:
                await client.rover_photos("unknown")
            assert exc.value.code == "INVALID_ROVER"
            with pytest.raises(ExplorerError) as exc:
                await client.search("")
            assert exc.value.code == "MISSING_QUERY"
            return apod, photos

    apod, photos = run(go())
    assert apod["title"] == "M33: The Triangulum Galaxy"
    assert [p["camera"]["name"] for p in photos["photos"]] == ["MAST"]


def test_direct_source_uses_normalizer(upstream):
    upstream.on("/planetary/apod", json={"date": "2025-01-07", "title": "X"})

    async def go():
        client = ExplorerClient("direct", settings=make_settings(), http_client=upstream.client())
        data = await client.apod(date="2025-01-07")
        with pytest.raises(ExplorerError) as exc:
            await client.rover_photos("unknown")
        assert exc.value.code == "INVALID_ROVER"
        with pytest.raises(ExplorerError) as exc:
            await client.epic()
        assert exc.value.code == "EPIC_FETCH_ERROR"
        await client.aclose()
        return data

    assert run(go()) == {"date": "2025-01-07", "title": "X"}
    assert upstream.requests[0].url.params["api_key"] == TEST_KEY
    assert len(upstream.requests) == 2


def backend_client(upstream, limiter=None):
    app = create_app(make_settings(), http_client=upstream.client(),
                     rate_limiter=limiter if limiter is not None else FixedWindowRateLimiter(100, 900))
    transport = httpx.ASGITransport(app=app)
    http_client = httpx.AsyncClient(transport=transport)
    return ExplorerClient("backend", api_url="http://explorer.test", settings=make_settings(),
                          http_client=http_client)


def test_backend_source_unwraps_envelope(upstream):
    feed = {"element_count": 0, "near_earth_objects": {}}
    upstream.on("/neo/rest/v1/feed", json=feed)

    async def go():
        client = backend_client(upstream)
        data = await client.neo_feed(start_date="2025-01-07", detailed=False)
        healthy = await client.health()
        return data, healthy

    data, healthy = run(go())
    assert data == feed
    assert healthy
    assert upstream.last.url.params["start_date"] == "2025-01-07"
    assert upstream.last.url.params["detailed"] == "false"


def test_backend_source_raises_envelope_errors(upstream):
    async def go():
        client = backend_client(upstream)
        with pytest.raises(ExplorerError) as exc:
            await client.rover_photos("unknown")
        return exc.value

    error = run(go())
    assert error.code == "INVALID_ROVER"
    assert error.status == 400
    assert upstream.requests == []


def test_backend_source_rate_limited(upstream):
    upstream.on("/EPIC/api/natural/images", json=[])

    async def go():
        client = backend_client(upstream, FixedWindowRateLimiter(1, 60))
        await client.epic()
        with pytest.raises(ExplorerError) as exc:
            await client.epic()
        return exc.value

    error = run(go())
    assert error.code == "RATE_LIMIT_EXCEEDED"
    assert error.status == 429


def test_epic_image_url_per_source():
    record = MOCK_DATA["epic"][0]
    mock = ExplorerClient("mock", settings=make_settings())
    assert mock.epic_image_url(record).endswith("/EPIC/archive/natural/2025/01/07/png/epic_1b_20250107003633.png")


# === terminal ===

def test_cli_apod_mock():
    result = runner.invoke(cli, ["--source", "mock", "apod"])

    assert result.exit_code == 0
    assert "Triangulum" in result.output


def test_cli_neo_hazardous_only():
    result = runner.invoke(cli, ["--source", "mock", "neo", "--hazardous-only"])

    assert result.exit_code == 0
    assert "PK9" in result.output
    assert "GR1" not in result.output


def test_cli_reports_invalid_rover():
    result = runner.invoke(cli, ["--source", "mock", "rovers", "zhurong"])

    assert result.exit_code == 1
    assert "INVALID_ROVER" in result.output


def test_cli_health_mock():
    result = runner.invoke(cli, ["--source", "mock", "health"])

    assert result.exit_code == 0
    assert "healthy" in result.output


def test_cli_rejects_unknown_source():
    result = runner.invoke(cli, ["--source", "fax", "health"])

    assert result.exit_code != 0
