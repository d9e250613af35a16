"""Adapters — tool bindings for external integrations.

Public re-exports for convenient access.
"""

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.adapters.mock import MockAdapter
from provisioner.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
]
