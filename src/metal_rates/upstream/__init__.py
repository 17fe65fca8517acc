"""Upstream gateway layer -- metal history and exchange-rate providers via the relay."""

from metal_rates.upstream.client import UpstreamGateway
from metal_rates.upstream.relay_gateway import RelayGateway

__all__ = ["RelayGateway", "UpstreamGateway"]
