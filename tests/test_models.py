"""
Tests for zone/output records, state normalization and metadata extraction.
"""

import pytest

from nowplaying_sidecar.core.models import NowPlaying, Output, TrackMetadata, Zone, normalize_state
from nowplaying_sidecar.protocol.messages import PlaybackState


class TestNormalizeState:
    """Tests for the playback state mapping."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("playing", PlaybackState.PLAYING),
            ("paused", PlaybackState.PAUSED),
            ("loading", PlaybackState.LOADING),
            ("stopped", PlaybackState.STOPPED),
            ("buffering", PlaybackState.STOPPED),
            ("", PlaybackState.STOPPED),
            (None, PlaybackState.STOPPED),
            (42, PlaybackState.STOPPED),
        ],
    )
    def test_mapping(self, raw: object, expected: PlaybackState) -> None:
        """Known states pass through; everything else is stopped."""
        assert normalize_state(raw) is expected


class TestExtractMetadata:
    """Tests for picking title/artist/album from line shapes."""

    def test_three_line(self) -> None:
        """three_line fills all fields."""
        np = NowPlaying.from_dict(
            {"three_line": {"line1": "Song", "line2": "Artist", "line3": "Album"}}
        )
        assert np is not None
        assert np.extract_metadata() == TrackMetadata("Song", "Artist", "Album")

    def test_two_line(self) -> None:
        """two_line leaves album empty."""
        np = NowPlaying.from_dict({"two_line": {"line1": "Song", "line2": "Artist"}})
        assert np is not None
        assert np.extract_metadata() == TrackMetadata("Song", "Artist", "")

    def test_one_line(self) -> None:
        """one_line only gives a title."""
        np = NowPlaying.from_dict({"one_line": {"line1": "Song - Artist"}})
        assert np is not None
        assert np.extract_metadata() == TrackMetadata("Song - Artist", "", "")

    def test_no_lines(self) -> None:
        """No line shapes gives empty strings."""
        np = NowPlaying.from_dict({"image_key": "img"})
        assert np is not None
        assert np.extract_metadata() == TrackMetadata()

    def test_richest_shape_wins_without_merging(self) -> None:
        """three_line wins over the others and nothing is merged in."""
        np = NowPlaying.from_dict(
            {
                "one_line": {"line1": "One"},
                "two_line": {"line1": "Two", "line2": "Two Artist"},
                "three_line": {"line1": "Three", "line2": "", "line3": ""},
            }
        )
        assert np is not None
        assert np.extract_metadata() == TrackMetadata("Three", "", "")

    def test_missing_line_fields(self) -> None:
        """Missing lines inside a shape become empty strings."""
        np = NowPlaying.from_dict({"three_line": {"line1": "Song"}})
        assert np is not None
        assert np.extract_metadata() == TrackMetadata("Song", "", "")

    def test_image_key(self) -> None:
        """Empty image keys are treated as absent."""
        assert NowPlaying.from_dict({"image_key": "img1"}).image_key == "img1"
        assert NowPlaying.from_dict({"image_key": ""}).image_key is None
        assert NowPlaying.from_dict("garbage") is None


class TestZoneRecord:
    """Tests for Zone.from_dict."""

    def test_full_record(self) -> None:
        """All modeled fields are picked up."""
        zone = Zone.from_dict(
            {
                "zone_id": "z1",
                "display_name": "Living Room",
                "state": "playing",
                "outputs": [{"output_id": "o1"}, {"output_id": "o2"}],
                "now_playing": {"image_key": "img1"},
                "seek_position": 12,
            }
        )
        assert zone is not None
        assert zone.zone_id == "z1"
        assert zone.display_name == "Living Room"
        assert zone.state is PlaybackState.PLAYING
        assert zone.output_ids == ["o1", "o2"]
        assert zone.now_playing is not None
        assert zone.is_active is True

    def test_missing_fields_default(self) -> None:
        """Missing lists and names default to empty values."""
        zone = Zone.from_dict({"zone_id": "z1"})
        assert zone is not None
        assert zone.display_name == ""
        assert zone.state is PlaybackState.STOPPED
        assert zone.output_ids == []
        assert zone.now_playing is None
        assert zone.is_active is False

    def test_rejects_missing_id(self) -> None:
        """Records without a zone_id are rejected."""
        assert Zone.from_dict({"display_name": "No id"}) is None
        assert Zone.from_dict({"zone_id": ""}) is None
        assert Zone.from_dict(None) is None


class TestOutputRecord:
    """Tests for Output.from_dict."""

    def test_status_from_source_controls(self) -> None:
        """Status falls back to the first source control."""
        output = Output.from_dict(
            {
                "output_id": "o1",
                "display_name": "Kitchen",
                "source_controls": [{"status": "standby"}],
            }
        )
        assert output is not None
        assert output.status == "standby"
        assert output.zone_id is None
        assert output.synthetic_zone_id == "output:o1"

    def test_direct_status(self) -> None:
        """A top-level status is used as-is."""
        output = Output.from_dict({"output_id": "o1", "status": "selected", "zone_id": "z1"})
        assert output is not None
        assert output.status == "selected"
        assert output.zone_id == "z1"

    def test_rejects_missing_id(self) -> None:
        """Records without an output_id are rejected."""
        assert Output.from_dict({"display_name": "Kitchen"}) is None
