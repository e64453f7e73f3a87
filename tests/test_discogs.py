"""Tests for the Discogs passthrough service (vinylscout/services/discogs.py)."""

from unittest.mock import patch

import httpx
import pytest

from vinylscout.config import Settings
from vinylscout.exceptions import ConfigurationError, ImageFetchError
from vinylscout.services import discogs

_REAL_ASYNC_CLIENT = httpx.AsyncClient


def _settings(**overrides) -> Settings:
    values = {"discogs_token": "tok"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _patch_client(handler):
    """Route every AsyncClient the service opens through ``handler``."""

    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return _REAL_ASYNC_CLIENT(*args, **kwargs)

    return patch("vinylscout.services.discogs.httpx.AsyncClient", side_effect=factory)


class TestBuildSearchParams:
    def test_defaults(self):
        """A plain query gets the default type and page size."""
        assert discogs.build_search_params({"q": "Radiohead"}) == {
            "q": "Radiohead",
            "type": "release",
            "per_page": "8",
        }

    def test_optional_params_forwarded(self):
        """Known optional params are forwarded, unknown ones dropped."""
        params = discogs.build_search_params(
            {"genre": "Rock", "year": "2026", "format": "Vinyl", "sort": "year", "foo": "bar"}
        )
        assert params == {
            "type": "release",
            "per_page": "8",
            "format": "Vinyl",
            "year": "2026",
            "genre": "Rock",
            "sort": "year",
        }

    def test_requires_something_to_search(self):
        """Year or type alone is not enough to search."""
        with pytest.raises(discogs.MissingSearchParams):
            discogs.build_search_params({"year": "2020", "type": "master"})


class TestSearch:
    @pytest.mark.asyncio
    async def test_requires_token(self):
        """Search without a token is a configuration error."""
        with pytest.raises(ConfigurationError):
            await discogs.search({"q": "x"}, config=_settings(discogs_token=""))

    @pytest.mark.asyncio
    async def test_forwards_auth_and_returns_json(self):
        """Token and user agent go upstream, JSON comes back untouched."""
        seen = {}

        def handler(request):
            seen["url"] = request.url
            seen["headers"] = request.headers
            return httpx.Response(200, json={"results": [{"id": 1}], "pagination": {}})

        with _patch_client(handler):
            data = await discogs.search({"q": "Bjork", "type": "release"}, config=_settings())

        assert data["results"] == [{"id": 1}]
        assert seen["url"].path == "/database/search"
        assert seen["url"].params["q"] == "Bjork"
        assert seen["headers"]["authorization"] == "Discogs token=tok"
        assert seen["headers"]["user-agent"] == "VinylScout/1.0"

    @pytest.mark.asyncio
    async def test_upstream_error_becomes_empty_results(self):
        """An upstream error status becomes an error with empty results."""
        with _patch_client(lambda request: httpx.Response(429, text="slow down")):
            data = await discogs.search({"q": "x"}, config=_settings())
        assert data == {"error": "Discogs 429: Too Many Requests", "results": []}

    @pytest.mark.asyncio
    async def test_network_error_becomes_empty_results(self):
        """A network error becomes an error with empty results."""
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with _patch_client(handler):
            data = await discogs.search({"q": "x"}, config=_settings())
        assert data["results"] == []
        assert data["error"].startswith("ConnectError")


class TestFetchCover:
    @pytest.mark.asyncio
    async def test_returns_image(self):
        """The cover bytes come back with their content type."""
        def handler(request):
            return httpx.Response(200, content=b"img", headers={"content-type": "image/webp"})

        with _patch_client(handler):
            image = await discogs.fetch_cover("https://i.discogs.test/a.webp", config=_settings())
        assert image == discogs.ProxiedImage(content=b"img", content_type="image/webp")

    @pytest.mark.asyncio
    async def test_upstream_status_is_kept(self):
        """A failed cover fetch keeps the upstream status."""
        with _patch_client(lambda request: httpx.Response(403)):
            with pytest.raises(ImageFetchError) as info:
                await discogs.fetch_cover("https://i.discogs.test/a.jpg", config=_settings())
        assert info.value.status == 403
