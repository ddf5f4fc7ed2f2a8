"""Stackwork backends - provisioning adapters the scheduler calls."""

from .base import Backend, invoke
from .memory import InMemoryBackend
from .pulumi_dynamic import DynamicProviderBackend

__all__ = [
    "Backend",
    "DynamicProviderBackend",
    "InMemoryBackend",
    "invoke",
]
