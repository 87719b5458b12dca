"""
Records for zones and outputs as reported by the controller.

Subscription payloads are loosely structured dicts. These dataclasses pull
out only the fields the sidecar models and tolerate anything missing: a
record without text gets empty strings, a record without a list gets an
empty list. Only the identity field is required; records without one are
rejected by the `from_dict` constructors returning None.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from nowplaying_sidecar.protocol.messages import PlaybackState

# Prefix that marks zone-list entries synthesized from standalone outputs
OUTPUT_ZONE_PREFIX = "output:"

# Suffix appended to the display name of standalone outputs
INACTIVE_SUFFIX = " (Inactive)"

# Playback states for which now-playing data is meaningful
ACTIVE_STATES = frozenset({PlaybackState.PLAYING, PlaybackState.PAUSED})


def normalize_state(state: Any) -> PlaybackState:
    """
    Map a controller playback state onto the wire vocabulary.

    playing, paused and loading pass through; anything else (stopped,
    unknown values, None) becomes stopped.
    """
    if state == "playing":
        return PlaybackState.PLAYING
    if state == "paused":
        return PlaybackState.PAUSED
    if state == "loading":
        return PlaybackState.LOADING
    return PlaybackState.STOPPED


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _lines(value: Any) -> dict[str, Any] | None:
    return value if isinstance(value, dict) else None


@dataclass(frozen=True)
class TrackMetadata:
    """Display text for the current track."""

    title: str = ""
    artist: str = ""
    album: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "artist": self.artist, "album": self.album}


@dataclass
class NowPlaying:
    """The now_playing block of a zone."""

    image_key: str | None = None
    one_line: dict[str, Any] | None = None
    two_line: dict[str, Any] | None = None
    three_line: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: Any) -> NowPlaying | None:
        if not isinstance(data, dict):
            return None
        image_key = data.get("image_key")
        return cls(
            image_key=image_key if isinstance(image_key, str) and image_key else None,
            one_line=_lines(data.get("one_line")),
            two_line=_lines(data.get("two_line")),
            three_line=_lines(data.get("three_line")),
        )

    def extract_metadata(self) -> TrackMetadata:
        """
        Pick title/artist/album from the richest text shape available.

        three_line gives all three fields, two_line title and artist,
        one_line only the title. The first shape present wins; shapes are
        never merged.
        """
        if self.three_line is not None:
            return TrackMetadata(
                title=_text(self.three_line.get("line1")),
                artist=_text(self.three_line.get("line2")),
                album=_text(self.three_line.get("line3")),
            )
        if self.two_line is not None:
            return TrackMetadata(
                title=_text(self.two_line.get("line1")),
                artist=_text(self.two_line.get("line2")),
            )
        if self.one_line is not None:
            return TrackMetadata(title=_text(self.one_line.get("line1")))
        return TrackMetadata()


@dataclass
class Zone:
    """A playback group. Replaced wholesale on every change for its id."""

    zone_id: str
    display_name: str = ""
    state: PlaybackState = PlaybackState.STOPPED
    output_ids: list[str] = field(default_factory=list)
    now_playing: NowPlaying | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Zone | None:
        if not isinstance(data, dict):
            return None
        zone_id = data.get("zone_id")
        if not isinstance(zone_id, str) or not zone_id:
            return None

        output_ids: list[str] = []
        for out in data.get("outputs") or []:
            if isinstance(out, dict) and isinstance(out.get("output_id"), str):
                output_ids.append(out["output_id"])

        return cls(
            zone_id=zone_id,
            display_name=_text(data.get("display_name")),
            state=normalize_state(data.get("state")),
            output_ids=output_ids,
            now_playing=NowPlaying.from_dict(data.get("now_playing")),
        )

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES


@dataclass
class Output:
    """An audio endpoint, possibly not part of any zone."""

    output_id: str
    display_name: str = ""
    zone_id: str | None = None
    status: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Output | None:
        if not isinstance(data, dict):
            return None
        output_id = data.get("output_id")
        if not isinstance(output_id, str) or not output_id:
            return None

        # The first source control carries selected/standby/deselected
        status = data.get("status")
        controls = data.get("source_controls")
        if status is None and isinstance(controls, list) and controls:
            first = controls[0]
            if isinstance(first, dict):
                status = first.get("status")

        zone_id = data.get("zone_id")
        return cls(
            output_id=output_id,
            display_name=_text(data.get("display_name")),
            zone_id=zone_id if isinstance(zone_id, str) and zone_id else None,
            status=status if isinstance(status, str) else None,
        )

    @property
    def synthetic_zone_id(self) -> str:
        return f"{OUTPUT_ZONE_PREFIX}{self.output_id}"
