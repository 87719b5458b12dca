"""
Line-delimited JSON output to the host process.

The host reads the sidecar's stdout line by line, so every call to
`OutputEmitter.emit` writes exactly one complete JSON object followed by a
newline and flushes. Nothing else may be written to this stream; logging
goes to stderr.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import IO, Any

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

logger = logging.getLogger(__name__)


def encode_line(payload: dict[str, Any]) -> bytes:
    """Serialize a payload as one compact, newline-terminated JSON line."""
    text = json.dumps(payload, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    return (text + "\n").encode("utf-8")


def _fallback_line(message: str) -> bytes:
    # Only a plain string goes through json here, so this cannot fail
    return ('{"type":"error","message":' + json.dumps(message) + "}\n").encode("ascii")


class OutputEmitter:
    """
    Writes wire messages to a binary stream, one per line, in call order.

    Serialization failures are replaced with an error message rather than
    raised. Write failures (the host closed its end of the pipe) are logged
    and swallowed; the server notices the host going away on its own.
    """

    def __init__(self, stream: IO[bytes] | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout.buffer
        self.emitted = 0
        self.write_failures = 0

    def emit(self, message: Message) -> None:
        """Serialize and write a single message."""
        try:
            line = encode_line(message.to_dict())
        except (TypeError, ValueError) as e:
            logger.error("Failed to serialize %s message: %s", message.message_type, e)
            line = _fallback_line(f"Serialization failed for {message.message_type}: {e}")

        self._write(line)

    def _write(self, line: bytes) -> None:
        try:
            self._stream.write(line)
            self._stream.flush()
        except (OSError, ValueError) as e:
            # ValueError: stream already closed
            self.write_failures += 1
            logger.warning("Failed to write to host: %s", e)
            return
        self.emitted += 1

    def emit_now_playing(
        self,
        zone_id: str,
        title: str,
        artist: str,
        album: str,
        state: PlaybackState,
        artwork: str | None = None,
    ) -> None:
        self.emit(
            NowPlayingMessage(
                zone_id=zone_id,
                title=title,
                artist=artist,
                album=album,
                state=state,
                artwork=artwork,
            )
        )

    def emit_zone_list(self, zones: list[ZoneInfo]) -> None:
        self.emit(ZoneListMessage(zones=zones))

    def emit_status(self, state: ConnectionState, message: str | None = None) -> None:
        self.emit(StatusMessage(state=state, message=message))

    def emit_error(self, message: str) -> None:
        self.emit(ErrorMessage(message=message))
