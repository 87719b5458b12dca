"""
Pairing lifecycle glue between the pairing layer and the core.

The pairing agent reports lifecycle signals here. On pairing,
ConnectionSupervisor installs the core's image capability into the
ArtworkFetcher and subscribes the StateReconciler to zone and output
bursts. On unpairing it clears all session state and tells the host
nothing is playing.

Each pairing starts a new session. Subscription callbacks remember the
session they were installed for and are ignored once it is over, so a late
burst from a previous controller can't leak into the new state.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Coroutine

from nowplaying_sidecar.protocol.messages import ConnectionState, NowPlayingMessage

if TYPE_CHECKING:
    from nowplaying_sidecar.controller.capabilities import (
        CoreHandle,
        PairingAgent,
        SubscriptionCallback,
        SubscriptionSource,
    )
    from nowplaying_sidecar.core.artwork import ArtworkFetcher
    from nowplaying_sidecar.core.state import StateReconciler
    from nowplaying_sidecar.protocol.emitter import OutputEmitter

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY_SECONDS = 5.0


class ConnectionSupervisor:
    """
    Owns pairing state and subscription setup/teardown.

    Subscription callbacks arrive on the event loop thread; each burst is
    turned into a task. Tasks start in the order the bursts arrived.
    """

    def __init__(
        self,
        reconciler: StateReconciler,
        fetcher: ArtworkFetcher,
        emitter: OutputEmitter,
        *,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY_SECONDS,
    ) -> None:
        self._reconciler = reconciler
        self._fetcher = fetcher
        self._emitter = emitter
        self.reconnect_delay = reconnect_delay

        self._agent: PairingAgent | None = None
        self._core: CoreHandle | None = None
        self._session = 0
        self._tasks: set[asyncio.Task[Any]] = set()
        self._reconnect_handle: asyncio.TimerHandle | None = None

    @property
    def current_core(self) -> CoreHandle | None:
        return self._core

    @property
    def is_connected(self) -> bool:
        return self._core is not None

    @property
    def session(self) -> int:
        return self._session

    def attach_agent(self, agent: PairingAgent) -> None:
        """Remember the agent so dropped connections can be retried."""
        self._agent = agent

    # ------------------------------------------------------------------
    # Lifecycle signals from the pairing agent
    # ------------------------------------------------------------------

    def on_core_paired(self, core: CoreHandle) -> None:
        """Authorization granted: connect services and start subscribing."""
        logger.info("Core paired: %s %s", core.display_name, core.display_version)

        if self._core is not None:
            logger.info("Replacing previous core %s", self._core.display_name)
            self._reset_session()

        self._session += 1
        self._core = core
        self._cancel_reconnect()

        self._emitter.emit_status(ConnectionState.CONNECTED, f"Connected to {core.display_name}")
        self._initialize_services(core, self._session)

    def on_core_unpaired(self, core: CoreHandle) -> None:
        """Pairing lost: drop every session-scoped identifier."""
        logger.info("Core unpaired: %s", core.display_name)

        self._session += 1
        self._core = None

        self._emitter.emit_status(
            ConnectionState.DISCONNECTED, f"Disconnected from {core.display_name}"
        )
        self._reset_session()
        self._emitter.emit(NowPlayingMessage.stopped())

    def on_authorization_pending(self, controller_name: str) -> None:
        """Controller found but the extension has not been enabled yet."""
        logger.info("Waiting for authorization from %s", controller_name)
        self._emitter.emit_status(
            ConnectionState.NOT_AUTHORIZED,
            f"Enable the extension in {controller_name} settings",
        )

    def on_connection_lost(self) -> None:
        """
        Direct connection closed; report it and retry after a delay.

        Session state is left alone. The pairing layer sends an unpaired
        signal if the controller is really gone.
        """
        logger.warning("Connection to controller closed")
        self._emitter.emit_status(ConnectionState.DISCONNECTED, "Connection to controller lost")
        self._schedule_reconnect()

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    def _reset_session(self) -> None:
        self._reconciler.clear()
        self._fetcher.clear_image_service()

    def _initialize_services(self, core: CoreHandle, session: int) -> None:
        try:
            if core.image is not None:
                self._fetcher.set_image_service(core.image)
            else:
                logger.warning("Image service not available")

            if core.transport is not None:
                self._subscribe(core.transport, session)
                logger.debug("Transport service initialized")
            else:
                logger.warning("Transport service not available")
        except Exception as e:
            logger.exception("Failed to initialize services: %s", e)
            self._emitter.emit_error("Failed to initialize controller services")

    def _subscribe(self, transport: SubscriptionSource, session: int) -> None:
        try:
            transport.subscribe_zones(self._zones_callback(session))
            logger.info("Zone subscription callback registered")
        except Exception as e:
            logger.exception("Error subscribing to zones: %s", e)
            self._emitter.emit_error("Failed to subscribe to zones")

        subscribe_outputs = getattr(transport, "subscribe_outputs", None)
        if subscribe_outputs is None:
            logger.debug("Transport has no output subscription")
            return
        try:
            subscribe_outputs(self._outputs_callback(session))
            logger.info("Output subscription callback registered")
        except Exception as e:
            # Outputs are supplementary; no error for the host
            logger.exception("Error subscribing to outputs: %s", e)

    def _zones_callback(self, session: int) -> SubscriptionCallback:
        def callback(response: str, data: dict[str, Any] | None) -> None:
            logger.debug("Zone subscription callback: %s", response)
            self._spawn(self._deliver_zones(session, response, data))

        return callback

    def _outputs_callback(self, session: int) -> SubscriptionCallback:
        def callback(response: str, data: dict[str, Any] | None) -> None:
            logger.debug("Output subscription callback: %s", response)
            self._spawn(self._deliver_outputs(session, response, data))

        return callback

    async def _deliver_zones(self, session: int, response: str, data: dict[str, Any] | None) -> None:
        if session != self._session:
            logger.debug("Ignoring zone burst from stale session %d", session)
            return
        await self._reconciler.handle_zones_response(response, data)

    async def _deliver_outputs(
        self, session: int, response: str, data: dict[str, Any] | None
    ) -> None:
        if session != self._session:
            logger.debug("Ignoring output burst from stale session %d", session)
            return
        self._reconciler.handle_outputs_response(response, data)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("Dropping subscription burst: no running event loop")
            return
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Reconnect
    # ------------------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        if self._agent is None:
            return
        self._cancel_reconnect()
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self.reconnect_delay, self._reconnect)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        if self._agent is None:
            return
        logger.info("Attempting to reconnect...")
        self._emitter.emit_status(ConnectionState.DISCOVERING, "Reconnecting to controller...")
        try:
            self._agent.reconnect()
        except Exception as e:
            logger.exception("Reconnect failed: %s", e)
            self._emitter.emit_error(f"Failed to connect to controller: {e}")
            self._schedule_reconnect()

    async def shutdown(self) -> None:
        """Stop reconnecting and wait for in-flight bursts to finish."""
        self._cancel_reconnect()
        if self._tasks:
            logger.info("Waiting for %d pending subscription bursts...", len(self._tasks))
            await asyncio.gather(*self._tasks, return_exceptions=True)
