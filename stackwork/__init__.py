"""
Stackwork - Dependency-ordered provisioning of declared infrastructure.

Declare resources in plain Python, wire the values one resource produces into
the inputs of another, and let Stackwork provision everything in dependency
order:

- Outputs carry values that are only known after provisioning
- Dependencies are inferred from the Outputs each resource consumes
- Independent resources are provisioned concurrently
- Failures poison dependents without touching unrelated branches
"""

from .backends import Backend, DynamicProviderBackend, InMemoryBackend
from .core import StackworkCore
from .errors import (
    ConfigurationError,
    CycleError,
    DependencyFailed,
    DeploymentError,
    DuplicateResourceError,
    ProvisioningError,
    ResourceNotFound,
    StackworkError,
    TransformError,
    UnresolvedExportError,
)
from .exports import ExportRegistry
from .graph import DependencyGraph
from .models import FailureReason, FailureReport, RunResult
from .output import Output
from .resources import Resource, ResourceId, ResourceState
from .scheduler import Scheduler
from .settings import StackworkSettings, get_settings, reload_settings
from .stack import Stack

__version__ = "0.1.0"
__all__ = [
    "Backend",
    "ConfigurationError",
    "CycleError",
    "DependencyFailed",
    "DependencyGraph",
    "DeploymentError",
    "DuplicateResourceError",
    "DynamicProviderBackend",
    "ExportRegistry",
    "FailureReason",
    "FailureReport",
    "InMemoryBackend",
    "Output",
    "ProvisioningError",
    "Resource",
    "ResourceId",
    "ResourceNotFound",
    "ResourceState",
    "RunResult",
    "Scheduler",
    "Stack",
    "StackworkCore",
    "StackworkError",
    "StackworkSettings",
    "TransformError",
    "UnresolvedExportError",
    "get_settings",
    "reload_settings",
]
