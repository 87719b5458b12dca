"""
State reconciliation for zones and outputs.

The controller reports zones and outputs as bursts of incremental changes.
StateReconciler folds those bursts into two maps (zone_id -> Zone and
output_id -> Output) and, after every mutation, publishes a fresh snapshot:

- a zone_list message covering every zone plus every output that no zone
  claims (shown as "<name> (Inactive)" under a synthetic "output:<id>" id);
- a now_playing message for each playing or paused zone in an upsert burst,
  with artwork resolved through the ArtworkFetcher.

There is no dirty-checking: every mutating call emits one zone list, as
long as the list is not empty.

Bursts are processed on the event loop. Artwork resolution is the only
await point, so a later burst may run while an earlier one waits on an
image; each burst still reads and writes the maps without interruption.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from nowplaying_sidecar.core.models import INACTIVE_SUFFIX, Output, Zone
from nowplaying_sidecar.protocol.messages import (
    ConnectionState,
    NowPlayingMessage,
    PlaybackState,
    ZoneInfo,
)

if TYPE_CHECKING:
    from nowplaying_sidecar.core.artwork import ArtworkFetcher
    from nowplaying_sidecar.protocol.emitter import OutputEmitter

logger = logging.getLogger(__name__)

# Subscription responses that carry data
RESPONSE_SUBSCRIBED = "Subscribed"
RESPONSE_CHANGED = "Changed"

# Subscription responses that mean the transport broke
TRANSPORT_ERRORS = frozenset({"NetworkError", "ConnectionError"})


class ZoneEventKind(str, Enum):
    """Kinds of zone mutation."""

    SUBSCRIBED = "subscribed"
    CHANGED = "changed"
    REMOVED = "removed"
    SEEK_ONLY = "seek_only"


class OutputEventKind(str, Enum):
    """Kinds of output mutation."""

    SUBSCRIBED = "subscribed"
    CHANGED = "changed"
    REMOVED = "removed"


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


class StateReconciler:
    """
    Owner of the zone and output maps.

    Nothing outside this class holds a reference to the maps; the `zones`
    and `outputs` properties return copies.
    """

    def __init__(self, emitter: OutputEmitter, fetcher: ArtworkFetcher) -> None:
        self._emitter = emitter
        self._fetcher = fetcher
        self._zones: dict[str, Zone] = {}
        self._outputs: dict[str, Output] = {}

    @property
    def zones(self) -> dict[str, Zone]:
        return dict(self._zones)

    @property
    def outputs(self) -> dict[str, Output]:
        return dict(self._outputs)

    # ------------------------------------------------------------------
    # Subscription entry points
    # ------------------------------------------------------------------

    async def handle_zones_response(self, response: str, data: dict[str, Any] | None) -> None:
        """
        Process one zone subscription burst.

        Never raises: a failure is logged and the next burst is processed
        normally.
        """
        try:
            if response in (RESPONSE_SUBSCRIBED, RESPONSE_CHANGED):
                await self._process_zones_burst(response, data if isinstance(data, dict) else {})
            elif response in TRANSPORT_ERRORS:
                logger.warning("Zone subscription error: %s", response)
                self._emitter.emit_status(
                    ConnectionState.DISCONNECTED, "Lost connection to controller"
                )
            else:
                logger.warning("Unknown zone subscription response: %s", response)
        except Exception as e:
            logger.exception("Error handling zone update: %s", e)

    def handle_outputs_response(self, response: str, data: dict[str, Any] | None) -> None:
        """
        Process one output subscription burst.

        Outputs are supplementary, so transport errors here are only logged;
        the zone subscription reports the disconnect.
        """
        try:
            if response in (RESPONSE_SUBSCRIBED, RESPONSE_CHANGED):
                self._process_outputs_burst(response, data if isinstance(data, dict) else {})
            elif response in TRANSPORT_ERRORS:
                logger.warning("Output subscription error: %s", response)
            else:
                logger.debug("Unknown output subscription response: %s", response)
        except Exception as e:
            logger.exception("Error handling output update: %s", e)

    async def _process_zones_burst(self, response: str, data: dict[str, Any]) -> None:
        seek_changed = _as_list(data.get("zones_seek_changed"))
        if seek_changed and data.get("zones") is None and data.get("zones_changed") is None:
            await self.apply_zone_event(ZoneEventKind.SEEK_ONLY, seek_changed)
            return

        removed = _as_list(data.get("zones_removed"))
        if removed:
            await self.apply_zone_event(ZoneEventKind.REMOVED, removed)

        records = _as_list(data.get("zones")) or _as_list(data.get("zones_changed"))
        if not records:
            logger.debug("No zones in update")
            return

        kind = ZoneEventKind.SUBSCRIBED if response == RESPONSE_SUBSCRIBED else ZoneEventKind.CHANGED
        await self.apply_zone_event(kind, records)

    def _process_outputs_burst(self, response: str, data: dict[str, Any]) -> None:
        removed = _as_list(data.get("outputs_removed"))
        if removed:
            self.apply_output_event(OutputEventKind.REMOVED, removed)

        records = _as_list(data.get("outputs")) or _as_list(data.get("outputs_changed"))
        if records:
            kind = (
                OutputEventKind.SUBSCRIBED
                if response == RESPONSE_SUBSCRIBED
                else OutputEventKind.CHANGED
            )
            self.apply_output_event(kind, records)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def apply_zone_event(self, kind: ZoneEventKind, payload: list[Any]) -> None:
        """
        Apply one zone mutation and publish the resulting snapshot.

        Args:
            kind: What the payload holds.
            payload: Zone records for subscribed/changed, zone ids for
                removed, seek deltas for seek_only (ignored).
        """
        if kind == ZoneEventKind.SEEK_ONLY:
            logger.debug("Seek position update for %d zone(s) - ignoring", len(payload))
            return

        if kind == ZoneEventKind.REMOVED:
            for zone_id in payload:
                if isinstance(zone_id, str) and self._zones.pop(zone_id, None) is not None:
                    logger.info("Removed zone: %s", zone_id)
            self.emit_zone_list()
            return

        burst: dict[str, Zone] = {}
        previous: dict[str, Zone | None] = {}
        for record in payload:
            zone = Zone.from_dict(record)
            if zone is None:
                logger.warning("Skipping zone record without zone_id")
                continue
            previous.setdefault(zone.zone_id, self._zones.get(zone.zone_id))
            self._zones[zone.zone_id] = zone
            burst[zone.zone_id] = zone
            logger.info(
                "Zone updated: %s (%s) - state: %s",
                zone.display_name,
                zone.zone_id,
                zone.state.value,
            )

        if not burst:
            return

        self.emit_zone_list()

        # Every active zone gets a now_playing so artwork is warm when the
        # host switches zones; zones that just stopped get an empty one
        for zone in burst.values():
            before = previous.get(zone.zone_id)
            if zone.is_active:
                await self._emit_now_playing(zone)
            elif zone.state == PlaybackState.STOPPED and before is not None and before.is_active:
                self._emitter.emit(NowPlayingMessage.stopped(zone.zone_id))

    def apply_output_event(self, kind: OutputEventKind, payload: list[Any]) -> None:
        """Apply one output mutation and publish the resulting zone list."""
        if kind == OutputEventKind.REMOVED:
            for output_id in payload:
                if isinstance(output_id, str) and self._outputs.pop(output_id, None) is not None:
                    logger.info("Removed output: %s", output_id)
        else:
            changed = False
            for record in payload:
                output = Output.from_dict(record)
                if output is None:
                    logger.warning("Skipping output record without output_id")
                    continue
                if output.output_id not in self._outputs:
                    logger.info("New output: %s (%s)", output.display_name, output.output_id)
                self._outputs[output.output_id] = output
                changed = True
            if not changed:
                return

        self.emit_zone_list()

    def clear(self) -> None:
        """Forget all zones and outputs, e.g. when pairing is lost."""
        self._zones.clear()
        self._outputs.clear()
        logger.debug("Zone and output state cleared")

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def build_zone_list(self) -> list[ZoneInfo]:
        """
        Build the zone list snapshot.

        Real zones come first, in the order they were first seen, followed
        by outputs that no zone lists among its outputs.
        """
        claimed: set[str] = set()
        for zone in self._zones.values():
            claimed.update(zone.output_ids)

        entries: list[ZoneInfo] = []
        for zone in self._zones.values():
            now_playing = None
            if zone.is_active and zone.now_playing is not None:
                now_playing = zone.now_playing.extract_metadata().to_dict()
            entries.append(
                ZoneInfo(
                    zone_id=zone.zone_id,
                    display_name=zone.display_name,
                    state=zone.state,
                    now_playing=now_playing,
                )
            )

        for output in self._outputs.values():
            if output.output_id in claimed:
                continue
            entries.append(
                ZoneInfo(
                    zone_id=output.synthetic_zone_id,
                    display_name=f"{output.display_name}{INACTIVE_SUFFIX}",
                    state=PlaybackState.STOPPED,
                )
            )
            logger.debug("Including inactive output: %s", output.display_name)

        return entries

    def emit_zone_list(self) -> bool:
        """
        Emit the current zone list.

        Returns:
            True if a message was emitted, False if the list was empty.
        """
        zones = self.build_zone_list()
        if not zones:
            return False
        self._emitter.emit_zone_list(zones)
        logger.debug("Emitted zone list with %d zone(s)/output(s)", len(zones))
        return True

    async def _emit_now_playing(self, zone: Zone) -> None:
        if zone.now_playing is None:
            self._emitter.emit(NowPlayingMessage.stopped(zone.zone_id))
            return

        metadata = zone.now_playing.extract_metadata()
        artwork = None
        if zone.now_playing.image_key:
            artwork = await self._fetcher.fetch(zone.now_playing.image_key)

        # Latest wins: a newer burst, a removal or clear() replaced this record
        # while the image was loading
        if self._zones.get(zone.zone_id) is not zone:
            logger.debug("Dropping stale now_playing for %s", zone.zone_id)
            return

        self._emitter.emit_now_playing(
            zone.zone_id,
            metadata.title,
            metadata.artist,
            metadata.album,
            zone.state,
            artwork,
        )
        logger.debug(
            "Emitted now playing for zone %s: %s by %s (%s)",
            zone.zone_id,
            metadata.title,
            metadata.artist,
            zone.state.value,
        )
