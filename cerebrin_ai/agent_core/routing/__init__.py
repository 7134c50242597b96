"""Task-kind based selection of generative backends."""

from .router import ProviderRouter, compose_prompt
from .table import DEFAULT_ROUTING_TABLE, RoutingTable

__all__ = ["DEFAULT_ROUTING_TABLE", "ProviderRouter", "RoutingTable", "compose_prompt"]
