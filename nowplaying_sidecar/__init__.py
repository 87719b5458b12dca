"""
Now-Playing Sidecar - a state bridge between a home-audio controller and a host app.

The sidecar subscribes to a controller's zone and output events, reconciles
them into a consistent snapshot, resolves album artwork, and writes the
result to stdout as line-delimited JSON for a host process to consume.
"""

__version__ = "0.1.0"
__license__ = "GPL-2.0"

from nowplaying_sidecar.server import SidecarServer

__all__ = ["SidecarServer", "__version__"]
