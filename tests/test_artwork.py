"""
Tests for ArtworkFetcher and PendingImage.

Covers cache hits and misses, image service errors, the fetch deadline,
and late responses arriving after the deadline.
"""

import asyncio
import base64
from typing import Any

import pytest

from nowplaying_sidecar.core.artwork import (
    DEFAULT_IMAGE_OPTIONS,
    ArtworkFetcher,
    PendingImage,
    to_data_url,
)
from nowplaying_sidecar.core.cache import ArtworkCache


class FakeImageSource:
    """Image service that records requests and answers when told to."""

    def __init__(self, auto_respond: bool = True) -> None:
        self.auto_respond = auto_respond
        self.requests: list[tuple[str, dict[str, Any], Any]] = []
        self.content_type: str | None = "image/png"
        self.body = b"\x89PNG-bytes"
        self.error: Any = None

    def get_image(self, image_key: str, options: dict[str, Any], callback: Any) -> None:
        self.requests.append((image_key, options, callback))
        if self.auto_respond:
            callback(self.error, self.content_type, self.body)

    def respond(self, index: int = -1, error: Any = None) -> None:
        _, _, callback = self.requests[index]
        callback(error, self.content_type, self.body)


class RaisingImageSource:
    """Image service whose request call itself fails."""

    def get_image(self, image_key: str, options: dict[str, Any], callback: Any) -> None:
        raise RuntimeError("socket closed")


def expected_url(content_type: str, body: bytes) -> str:
    return f"data:{content_type};base64,{base64.b64encode(body).decode()}"


class TestToDataUrl:
    """Tests for data URL construction."""

    def test_uses_content_type(self) -> None:
        """The reported content type becomes the data URL mime type."""
        assert to_data_url("image/png", b"abc") == "data:image/png;base64,YWJj"

    def test_defaults_to_jpeg(self) -> None:
        """A missing content type defaults to image/jpeg."""
        assert to_data_url(None, b"abc") == "data:image/jpeg;base64,YWJj"
        assert to_data_url("", b"abc") == "data:image/jpeg;base64,YWJj"


class TestArtworkFetcher:
    """Tests for ArtworkFetcher.fetch."""

    @pytest.mark.asyncio
    async def test_empty_key_skips_service(self) -> None:
        """None and empty keys resolve to None without a request."""
        source = FakeImageSource()
        fetcher = ArtworkFetcher()
        fetcher.set_image_service(source)

        assert await fetcher.fetch(None) is None
        assert await fetcher.fetch("") is None
        assert source.requests == []

    @pytest.mark.asyncio
    async def test_no_image_service(self) -> None:
        """Without an image service, fetch resolves to None."""
        fetcher = ArtworkFetcher()
        assert fetcher.has_image_service is False
        assert await fetcher.fetch("img1") is None

    @pytest.mark.asyncio
    async def test_cache_miss_fetches_and_caches(self) -> None:
        """A miss issues one request and stores the data URL."""
        source = FakeImageSource()
        cache: ArtworkCache[str] = ArtworkCache()
        fetcher = ArtworkFetcher(cache)
        fetcher.set_image_service(source)

        result = await fetcher.fetch("img1")

        assert result == expected_url("image/png", source.body)
        assert len(source.requests) == 1
        key, options, _ = source.requests[0]
        assert key == "img1"
        assert options == DEFAULT_IMAGE_OPTIONS
        assert cache.get("img1") == result

    @pytest.mark.asyncio
    async def test_cache_hit_skips_service(self) -> None:
        """A second fetch for the same key is served from the cache."""
        source = FakeImageSource()
        fetcher = ArtworkFetcher()
        fetcher.set_image_service(source)

        first = await fetcher.fetch("img1")
        second = await fetcher.fetch("img1")

        assert first == second
        assert len(source.requests) == 1

    @pytest.mark.asyncio
    async def test_default_content_type(self) -> None:
        """A response without a content type is wrapped as JPEG."""
        source = FakeImageSource()
        source.content_type = None
        fetcher = ArtworkFetcher()
        fetcher.set_image_service(source)

        result = await fetcher.fetch("img1")

        assert result is not None
        assert result.startswith("data:image/jpeg;base64,")

    @pytest.mark.asyncio
    async def test_custom_image_options(self) -> None:
        """Configured image options are sent with every request."""
        source = FakeImageSource()
        options = {"scale": "fill", "width": 128, "height": 128, "format": "image/png"}
        fetcher = ArtworkFetcher(image_options=options)
        fetcher.set_image_service(source)

        await fetcher.fetch("img1")

        assert source.requests[0][1] == options

    @pytest.mark.asyncio
    async def test_service_error_not_cached(self) -> None:
        """An error response resolves to None and leaves the cache alone."""
        source = FakeImageSource()
        source.error = "NotFound"
        cache: ArtworkCache[str] = ArtworkCache()
        fetcher = ArtworkFetcher(cache)
        fetcher.set_image_service(source)

        assert await fetcher.fetch("img1") is None
        assert cache.size() == 0

    @pytest.mark.asyncio
    async def test_request_raising(self) -> None:
        """A request call that raises resolves to None."""
        fetcher = ArtworkFetcher(timeout=0.05)
        fetcher.set_image_service(RaisingImageSource())

        assert await fetcher.fetch("img1") is None
        assert fetcher.cache.size() == 0

    @pytest.mark.asyncio
    async def test_deferred_response(self) -> None:
        """A response arriving later but before the deadline resolves the fetch."""
        source = FakeImageSource(auto_respond=False)
        fetcher = ArtworkFetcher(timeout=1.0)
        fetcher.set_image_service(source)

        task = asyncio.create_task(fetcher.fetch("img1"))
        await asyncio.sleep(0)
        assert len(source.requests) == 1

        source.respond()
        result = await task

        assert result == expected_url("image/png", source.body)
        assert fetcher.cache.get("img1") == result

    @pytest.mark.asyncio
    async def test_timeout_resolves_none(self) -> None:
        """A request that outlives the deadline resolves to None."""
        source = FakeImageSource(auto_respond=False)
        fetcher = ArtworkFetcher(timeout=0.01)
        fetcher.set_image_service(source)

        assert await fetcher.fetch("img2") is None
        assert fetcher.cache.size() == 0

    @pytest.mark.asyncio
    async def test_late_response_after_timeout_ignored(self) -> None:
        """A response after the deadline does not touch the cache."""
        source = FakeImageSource(auto_respond=False)
        cache: ArtworkCache[str] = ArtworkCache()
        fetcher = ArtworkFetcher(cache, timeout=0.01)
        fetcher.set_image_service(source)

        assert await fetcher.fetch("img2") is None

        # Late callback must be a harmless no-op
        source.respond()

        assert cache.size() == 0
        assert cache.get("img2") is None

    @pytest.mark.asyncio
    async def test_concurrent_different_keys(self) -> None:
        """Fetches for different keys can be in flight together."""
        source = FakeImageSource(auto_respond=False)
        fetcher = ArtworkFetcher(timeout=1.0)
        fetcher.set_image_service(source)

        t1 = asyncio.create_task(fetcher.fetch("a"))
        t2 = asyncio.create_task(fetcher.fetch("b"))
        await asyncio.sleep(0)
        assert [r[0] for r in source.requests] == ["a", "b"]

        source.respond(1)
        source.respond(0)

        assert await t1 is not None
        assert await t2 is not None
        assert fetcher.cache.size() == 2

    @pytest.mark.asyncio
    async def test_clear_image_service_clears_cache(self) -> None:
        """Clearing the service drops cached artwork and the service."""
        source = FakeImageSource()
        fetcher = ArtworkFetcher()
        fetcher.set_image_service(source)
        await fetcher.fetch("img1")

        fetcher.clear_image_service()

        assert fetcher.has_image_service is False
        assert fetcher.cache.size() == 0

    @pytest.mark.asyncio
    async def test_clear_image_service_abandons_pending(self) -> None:
        """In-flight requests resolve to None when the service is cleared."""
        source = FakeImageSource(auto_respond=False)
        fetcher = ArtworkFetcher(timeout=5.0)
        fetcher.set_image_service(source)

        task = asyncio.create_task(fetcher.fetch("img1"))
        await asyncio.sleep(0)

        fetcher.clear_image_service()
        assert await task is None

        source.respond()
        assert fetcher.cache.size() == 0


class TestPendingImage:
    """Tests for the settle-once request bridge."""

    @pytest.mark.asyncio
    async def test_response_settles_once(self) -> None:
        """Only the first response settles the future."""
        pending = PendingImage("img1", timeout=1.0)

        pending.on_response(None, "image/png", b"one")
        pending.on_response(None, "image/png", b"two")

        assert pending.settled is True
        assert pending.future.result() == to_data_url("image/png", b"one")
        assert pending.late_responses == 1

    @pytest.mark.asyncio
    async def test_timeout_then_response(self) -> None:
        """After the deadline fires, a response is counted as late."""
        pending = PendingImage("img2", timeout=0.01)

        with pytest.raises(Exception) as exc_info:
            await pending.future
        assert "timeout" in str(exc_info.value)

        pending.on_response(None, "image/png", b"late")

        assert pending.late_responses == 1
        assert pending.future.done()

    @pytest.mark.asyncio
    async def test_error_response(self) -> None:
        """An error response settles the future with an exception."""
        pending = PendingImage("img1", timeout=1.0)

        pending.on_response("boom", None, None)

        assert pending.settled is True
        with pytest.raises(Exception, match="boom"):
            pending.future.result()
