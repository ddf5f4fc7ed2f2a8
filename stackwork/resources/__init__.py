"""
Stackwork Resources - Pydantic models for declared infrastructure resources.
"""

from .base import Resource, ResourceId, ResourceState

__all__ = [
    "Resource",
    "ResourceId",
    "ResourceState",
]
