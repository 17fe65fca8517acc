"""Relay layer -- credential-holding pass-through to upstream providers."""

from metal_rates.relay.app import create_relay_app, install_relay
from metal_rates.relay.rotation import CredentialRotator, RotationResult
from metal_rates.relay.service import RelayResponse, RelayService

__all__ = [
    "CredentialRotator",
    "RelayResponse",
    "RelayService",
    "RotationResult",
    "create_relay_app",
    "install_relay",
]
