"""
Host-facing protocol for the sidecar.

This package defines the line-delimited JSON messages written to stdout
and the emitter that writes them.
"""

from nowplaying_sidecar.protocol.emitter import OutputEmitter
from nowplaying_sidecar.protocol.messages import (
    ConnectionState,
    ErrorMessage,
    Message,
    NowPlayingMessage,
    PlaybackState,
    StatusMessage,
    ZoneInfo,
    ZoneListMessage,
)

__all__ = [
    "OutputEmitter",
    "Message",
    "NowPlayingMessage",
    "ZoneListMessage",
    "ZoneInfo",
    "StatusMessage",
    "ErrorMessage",
    "PlaybackState",
    "ConnectionState",
]
