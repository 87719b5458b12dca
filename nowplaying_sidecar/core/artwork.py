"""
Artwork fetching for now-playing messages.

Album art lives on the controller and is addressed by an opaque,
session-scoped image key. ArtworkFetcher turns a key into a
`data:<mime>;base64,...` URL the host process can display directly:

1. Empty keys resolve to None without touching the image service.
2. Cache hits (see ArtworkCache) resolve immediately.
3. Misses issue exactly one image request and race it against a deadline.

The image service answers through a plain callback. PendingImage bridges
that callback into an asyncio future that can be settled only once, by
whichever of the callback or the deadline timer fires first. A response
arriving after the deadline is dropped without touching the cache.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import TYPE_CHECKING, Any

from nowplaying_sidecar.core import ArtworkFetchError, ArtworkTimeoutError
from nowplaying_sidecar.core.cache import ArtworkCache

if TYPE_CHECKING:
    from nowplaying_sidecar.controller.capabilities import ImageSource

logger = logging.getLogger(__name__)

# Deadline for a single image request
IMAGE_FETCH_TIMEOUT_SECONDS = 10.0

# Used when the image service does not report a content type
DEFAULT_CONTENT_TYPE = "image/jpeg"

# Thumbnail request for a small status icon
DEFAULT_IMAGE_OPTIONS: dict[str, Any] = {
    "scale": "fit",
    "width": 64,
    "height": 64,
    "format": "image/jpeg",
}


def to_data_url(content_type: str | None, body: bytes) -> str:
    """Wrap raw image bytes as a base64 data URL."""
    mime = content_type or DEFAULT_CONTENT_TYPE
    encoded = base64.b64encode(body).decode("ascii")
    return f"data:{mime};base64,{encoded}"


class PendingImage:
    """
    A single in-flight image request with a deadline.

    The future is settled at most once. The deadline timer handle doubles as
    the "still pending" flag: whichever trigger finds it armed disarms it and
    settles the future; the other trigger finds it disarmed and does nothing.
    """

    def __init__(self, image_key: str, timeout: float) -> None:
        self.image_key = image_key
        self.timeout = timeout
        loop = asyncio.get_running_loop()
        self.future: asyncio.Future[str] = loop.create_future()
        self._timer: asyncio.TimerHandle | None = loop.call_later(timeout, self._on_timeout)
        self.late_responses = 0

    @property
    def settled(self) -> bool:
        return self._timer is None

    def _disarm(self) -> bool:
        """Disarm the deadline. Returns False if it was already disarmed."""
        if self._timer is None:
            return False
        self._timer.cancel()
        self._timer = None
        return True

    def _on_timeout(self) -> None:
        # call_later already fired, so only the flag needs clearing
        self._timer = None
        if not self.future.done():
            self.future.set_exception(
                ArtworkTimeoutError(
                    f"Image fetch timeout after {self.timeout:g}s for key: {self.image_key}"
                )
            )

    def on_response(self, error: Any, content_type: str | None, body: bytes | None) -> None:
        """Image service callback."""
        if not self._disarm():
            self.late_responses += 1
            logger.debug("Ignoring late image response for %s", self.image_key)
            return

        if self.future.done():
            # Awaiting side was cancelled
            return

        if error:
            self.future.set_exception(ArtworkFetchError(str(error)))
            return

        try:
            self.future.set_result(to_data_url(content_type, body or b""))
        except Exception as e:
            self.future.set_exception(ArtworkFetchError(f"Invalid image body: {e}"))

    def abandon(self, reason: str) -> None:
        """Settle with an error if still pending, e.g. when the session ends."""
        if self._disarm() and not self.future.done():
            self.future.set_exception(ArtworkFetchError(reason))


class ArtworkFetcher:
    """
    Resolves image keys to data URLs, memoized through an ArtworkCache.

    Concurrent fetches for different keys may be in flight at once.
    Concurrent fetches for the same key are not coalesced; each one races
    its own deadline.
    """

    def __init__(
        self,
        cache: ArtworkCache[str] | None = None,
        *,
        timeout: float = IMAGE_FETCH_TIMEOUT_SECONDS,
        image_options: dict[str, Any] | None = None,
    ) -> None:
        self.cache: ArtworkCache[str] = cache if cache is not None else ArtworkCache()
        self.timeout = timeout
        self.image_options = dict(image_options or DEFAULT_IMAGE_OPTIONS)
        self._image_service: ImageSource | None = None
        self._pending: set[PendingImage] = set()

    @property
    def has_image_service(self) -> bool:
        return self._image_service is not None

    def set_image_service(self, service: ImageSource) -> None:
        """Install the image capability of a freshly paired controller."""
        self._image_service = service
        logger.debug("Image service initialized")

    def clear_image_service(self) -> None:
        """
        Drop the image capability and the cache.

        Image keys are scoped to one controller session, so cached artwork
        is useless once pairing is lost. In-flight requests are abandoned.
        """
        self._image_service = None
        for pending in list(self._pending):
            pending.abandon("Image service cleared")
        self._pending.clear()
        self.clear_cache()
        logger.debug("Image service cleared")

    def clear_cache(self) -> None:
        size = self.cache.size()
        self.cache.clear()
        logger.debug("Cleared artwork cache (%d items)", size)

    async def fetch(self, image_key: str | None) -> str | None:
        """
        Fetch artwork for an image key as a data URL.

        Returns:
            The data URL, or None if there is no key, no image service,
            or the request failed or timed out.
        """
        if not image_key:
            logger.debug("No image key provided")
            return None

        cached = self.cache.get(image_key)
        if cached is not None:
            logger.debug("Using cached artwork for %s", image_key)
            return cached

        if self._image_service is None:
            logger.warning("Image service not available, cannot fetch artwork")
            return None

        try:
            data_url = await self._request(self._image_service, image_key)
        except ArtworkTimeoutError as e:
            logger.error("Artwork fetch timed out: %s", e)
            return None
        except ArtworkFetchError as e:
            logger.error("Failed to fetch artwork for %s: %s", image_key, e)
            return None

        self.cache.set(image_key, data_url)
        logger.debug("Fetched and cached artwork for %s", image_key)
        return data_url

    async def _request(self, service: ImageSource, image_key: str) -> str:
        pending = PendingImage(image_key, self.timeout)
        self._pending.add(pending)
        try:
            try:
                service.get_image(image_key, dict(self.image_options), pending.on_response)
            except Exception as e:
                raise ArtworkFetchError(f"Image request failed: {e}") from e
            return await pending.future
        finally:
            self._pending.discard(pending)
            if not pending.settled:
                # Raised before the callback or the deadline; stop the timer
                pending.abandon("Request aborted")
                if not pending.future.cancelled():
                    pending.future.exception()
