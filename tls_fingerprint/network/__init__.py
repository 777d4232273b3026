"""Network container."""

from .network import TOPOLOGIES, Network

__all__ = ["Network", "TOPOLOGIES"]
