"""Adapters — tool bindings for host side effects.

Public re-exports for convenient access.
"""

from vpsbootstrap.adapters.base import Adapter, ExecutionContext
from vpsbootstrap.adapters.mock import MockAdapter
from vpsbootstrap.adapters.registry import AdapterRegistry, default_registry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
    "default_registry",
]
