"""
Controller-facing glue for the sidecar.

This package defines the capabilities a paired controller provides and the
supervisor that wires them into the core.
"""

from nowplaying_sidecar.controller.capabilities import (
    CoreHandle,
    ImageSource,
    PairingAgent,
    SubscriptionSource,
)
from nowplaying_sidecar.controller.supervisor import ConnectionSupervisor

__all__ = [
    "ConnectionSupervisor",
    "CoreHandle",
    "ImageSource",
    "PairingAgent",
    "SubscriptionSource",
]
