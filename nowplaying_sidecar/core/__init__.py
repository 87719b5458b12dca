"""
Core domain package.

This package holds the state reconciliation engine and the artwork cache.
It knows nothing about the pairing library or the host process; callers
feed it subscription bursts and it talks to the outside world only through
the OutputEmitter it is given.

We intentionally keep exports minimal; consumers should usually import from the
specific module they need (e.g. `nowplaying_sidecar.core.state`).
"""

from __future__ import annotations

__all__: list[str] = [
    "CoreError",
    "ArtworkFetchError",
    "ArtworkTimeoutError",
]


class CoreError(Exception):
    """Base class for core-layer exceptions."""


class ArtworkFetchError(CoreError):
    """Raised when the image service reports an error for an image key."""


class ArtworkTimeoutError(ArtworkFetchError):
    """Raised when the image service does not answer before the deadline."""
