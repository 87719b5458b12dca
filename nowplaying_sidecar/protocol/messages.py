"""
Wire messages sent to the host process.

Every message is one JSON object on one line, discriminated by "type":

    {"type":"now_playing","zone_id":..,"title":..,"artist":..,"album":..,"state":..,"artwork"?:..}
    {"type":"zone_list","zones":[{"zone_id":..,"display_name":..,"state":..,"now_playing"?:{..}}]}
    {"type":"status","state":"discovering|not_authorized|connected|disconnected","message"?:..}
    {"type":"error","message":..}

Optional fields are left out of `to_dict()` when absent; they are never
sent as null.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PlaybackState(str, Enum):
    """Playback state as seen by the host."""

    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"
    LOADING = "loading"


class ConnectionState(str, Enum):
    """Controller connection state as seen by the host."""

    DISCOVERING = "discovering"
    NOT_AUTHORIZED = "not_authorized"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass
class Message:
    """Base class for all wire messages."""

    message_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert message to dictionary for JSON serialization."""
        return {"type": self.message_type}


@dataclass
class NowPlayingMessage(Message):
    """Track info for one zone, with artwork when it could be resolved."""

    message_type: str = field(default="now_playing", init=False)
    zone_id: str = ""
    title: str = ""
    artist: str = ""
    album: str = ""
    state: PlaybackState = PlaybackState.STOPPED
    artwork: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "type": self.message_type,
            "zone_id": self.zone_id,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "state": PlaybackState(self.state).value,
        }
        if self.artwork is not None:
            result["artwork"] = self.artwork
        return result

    @classmethod
    def stopped(cls, zone_id: str = "") -> NowPlayingMessage:
        """Empty message telling the host nothing is playing."""
        return cls(zone_id=zone_id, state=PlaybackState.STOPPED)


@dataclass
class ZoneInfo:
    """One entry of the zone list. Artwork is never included here."""

    zone_id: str
    display_name: str
    state: PlaybackState = PlaybackState.STOPPED
    now_playing: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "zone_id": self.zone_id,
            "display_name": self.display_name,
            "state": PlaybackState(self.state).value,
        }
        if self.now_playing is not None:
            result["now_playing"] = dict(self.now_playing)
        return result


@dataclass
class ZoneListMessage(Message):
    """Snapshot of every zone plus every standalone output."""

    message_type: str = field(default="zone_list", init=False)
    zones: list[ZoneInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.message_type,
            "zones": [zone.to_dict() for zone in self.zones],
        }


@dataclass
class StatusMessage(Message):
    """Connection status change."""

    message_type: str = field(default="status", init=False)
    state: ConnectionState = ConnectionState.DISCONNECTED
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "type": self.message_type,
            "state": ConnectionState(self.state).value,
        }
        if self.message is not None:
            result["message"] = self.message
        return result


@dataclass
class ErrorMessage(Message):
    """A problem the host should know about."""

    message_type: str = field(default="error", init=False)
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.message_type,
            "message": self.message,
        }
