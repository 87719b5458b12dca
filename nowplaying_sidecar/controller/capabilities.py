"""
Capability interfaces the pairing layer supplies to the sidecar.

The discovery/pairing library is an external collaborator. Whatever library
is used, an adapter wraps it so that the core only ever sees these shapes:

- SubscriptionSource: delivers zone and output bursts through callbacks.
- ImageSource: fetches one image by key and answers through a callback.
- PairingAgent: drives discovery and reports pairing lifecycle to the
  ConnectionSupervisor.

Callback signatures mirror the controller's transport and image services:

    subscription callback: (response: str, data: dict | None) -> None
        response is one of "Subscribed", "Changed", "NetworkError",
        "ConnectionError".

    image callback: (error, content_type: str | None, body: bytes | None) -> None
        error is falsy on success.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Protocol

if TYPE_CHECKING:
    from nowplaying_sidecar.config import SidecarConfig
    from nowplaying_sidecar.controller.supervisor import ConnectionSupervisor

SubscriptionCallback = Callable[[str, "dict[str, Any] | None"], None]
ImageCallback = Callable[[Any, "str | None", "bytes | None"], None]


class SubscriptionSource(Protocol):
    """Zone/output subscription capability of a paired controller."""

    def subscribe_zones(self, callback: SubscriptionCallback) -> None: ...

    def subscribe_outputs(self, callback: SubscriptionCallback) -> None: ...


class ImageSource(Protocol):
    """Image fetch capability of a paired controller."""

    def get_image(
        self,
        image_key: str,
        options: dict[str, Any],
        callback: ImageCallback,
    ) -> None: ...


class PairingAgent(Protocol):
    """
    Adapter around the external discovery/pairing library.

    The agent calls back into the supervisor with on_core_paired,
    on_core_unpaired, on_authorization_pending and on_connection_lost.
    """

    def start(self, supervisor: ConnectionSupervisor, config: SidecarConfig) -> None: ...

    def reconnect(self) -> None: ...

    def stop(self) -> None: ...


@dataclass
class CoreHandle:
    """A paired controller ("core") as handed over by the pairing layer."""

    display_name: str
    display_version: str = ""
    transport: SubscriptionSource | None = None
    image: ImageSource | None = None
