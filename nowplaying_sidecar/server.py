"""
Now-Playing Sidecar - Main Server Module

This module contains the SidecarServer class that wires all components
together and manages the process lifecycle.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from typing import IO, TYPE_CHECKING, Any

from nowplaying_sidecar.config import SidecarConfig, get_config
from nowplaying_sidecar.controller.supervisor import ConnectionSupervisor
from nowplaying_sidecar.core.artwork import ArtworkFetcher
from nowplaying_sidecar.core.cache import ArtworkCache
from nowplaying_sidecar.core.state import StateReconciler
from nowplaying_sidecar.protocol.emitter import OutputEmitter
from nowplaying_sidecar.protocol.messages import ConnectionState

if TYPE_CHECKING:
    from nowplaying_sidecar.controller.capabilities import PairingAgent

logger = logging.getLogger(__name__)


class SidecarServer:
    """
    Main sidecar process that coordinates all components.

    The server manages:
    - OutputEmitter writing the JSON line protocol to stdout
    - ArtworkCache / ArtworkFetcher for thumbnails
    - StateReconciler holding zone and output state
    - ConnectionSupervisor handling pairing lifecycle
    - An optional PairingAgent wrapping the discovery/pairing library

    The host process owns our stdin. When it exits, stdin reaches EOF and
    the sidecar shuts down rather than linger as an orphan.
    """

    def __init__(
        self,
        config: SidecarConfig | None = None,
        *,
        agent: PairingAgent | None = None,
        output: IO[bytes] | None = None,
        stdin: IO[Any] | None = None,
        watch_stdin: bool = True,
    ) -> None:
        """
        Initialize the sidecar.

        Args:
            config: Loaded configuration. If None, uses the global config.
            agent: Adapter for the pairing library; without one the sidecar
                reports discovering and waits.
            output: Binary stream for the wire protocol (default stdout).
            stdin: Stream watched for EOF (default sys.stdin).
            watch_stdin: Set to False to not tie the lifetime to stdin.
        """
        self.config = config or get_config()
        self.agent = agent
        self._stdin = stdin
        self._watch_stdin = watch_stdin

        artwork = self.config.artwork
        self.emitter = OutputEmitter(output)
        self.artwork_cache: ArtworkCache[str] = ArtworkCache(
            max_size=artwork.cache_size,
            ttl_seconds=artwork.cache_ttl_seconds,
        )
        self.fetcher = ArtworkFetcher(
            self.artwork_cache,
            timeout=artwork.fetch_timeout_seconds,
            image_options=artwork.image_options,
        )
        self.reconciler = StateReconciler(self.emitter, self.fetcher)
        self.supervisor = ConnectionSupervisor(
            self.reconciler,
            self.fetcher,
            self.emitter,
            reconnect_delay=self.config.connection.reconnect_delay_seconds,
        )

        # Server state
        self._running = False
        self._shutdown_event: asyncio.Event | None = None
        self._background_tasks: list[asyncio.Task[None]] = []

    @property
    def is_running(self) -> bool:
        """Check if the sidecar is currently running."""
        return self._running

    async def start(self) -> None:
        """Start all components."""
        logger.info("Starting sidecar...")

        self._running = True
        self._shutdown_event = asyncio.Event()

        connection = self.config.connection
        if connection.uses_discovery:
            self.emitter.emit_status(ConnectionState.DISCOVERING, "Searching for controller...")
        else:
            logger.info("Connecting directly to controller at %s:%d", connection.host, connection.port)
            self.emitter.emit_status(
                ConnectionState.DISCOVERING, f"Connecting to {connection.host}..."
            )

        if self.agent is not None:
            self.supervisor.attach_agent(self.agent)
            try:
                self.agent.start(self.supervisor, self.config)
            except Exception as e:
                logger.error("Failed to start pairing agent: %s", e)
                self.emitter.emit_error(f"Failed to start controller connection: {e}")
                raise
        else:
            logger.warning("No pairing agent configured; nothing will pair")

        heartbeat = self.config.output.heartbeat_interval_seconds
        if heartbeat > 0:
            self._background_tasks.append(asyncio.create_task(self._heartbeat_loop(heartbeat)))

        if self._watch_stdin:
            self._background_tasks.append(asyncio.create_task(self._watch_host()))

        logger.info("Sidecar started")

    async def stop(self) -> None:
        """Stop all components gracefully."""
        if not self._running:
            return

        logger.info("Stopping sidecar...")
        self._running = False

        if self.agent is not None:
            try:
                self.agent.stop()
            except Exception as e:
                logger.warning("Error stopping pairing agent: %s", e)

        for task in self._background_tasks:
            task.cancel()
        await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        await self.supervisor.shutdown()

        if self._shutdown_event:
            self._shutdown_event.set()

        logger.info("Sidecar stopped")

    def request_shutdown(self) -> None:
        """Ask run() to stop the sidecar."""
        if self._shutdown_event:
            self._shutdown_event.set()

    async def run(self) -> None:
        """
        Run the sidecar until shutdown is requested.

        Shutdown comes from SIGINT/SIGTERM or from the host closing stdin.
        """
        await self.start()

        loop = asyncio.get_running_loop()

        def handle_signal() -> None:
            logger.info("Received shutdown signal")
            self.request_shutdown()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, handle_signal)
            except NotImplementedError:
                # Signal handlers not supported on Windows
                pass

        if self._shutdown_event:
            await self._shutdown_event.wait()

        await self.stop()

    async def _heartbeat_loop(self, interval: float) -> None:
        """Re-emit the zone list so a host that missed an update catches up."""
        while True:
            await asyncio.sleep(interval)
            self.reconciler.emit_zone_list()

    async def _watch_host(self) -> None:
        """Shut down once the host closes our stdin."""
        stream = self._stdin if self._stdin is not None else sys.stdin
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(reader)

        try:
            transport, _ = await loop.connect_read_pipe(lambda: protocol, stream)
        except (OSError, ValueError, NotImplementedError) as e:
            logger.debug("Not watching stdin for host exit: %s", e)
            return

        try:
            while await reader.read(4096):
                # The host does not send commands; input is discarded
                pass
        finally:
            with contextlib.suppress(Exception):
                transport.close()

        logger.info("Host closed stdin, shutting down")
        self.request_shutdown()
