"""
Stackwork errors.

Configuration errors abort a run before any provisioning starts. The other
errors describe why an individual resource or value ended up failed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import RunResult


class StackworkError(Exception):
    """Base exception for all Stackwork errors."""
    pass


class ConfigurationError(StackworkError):
    """Errors in the declared stack (fatal, never retried)."""
    pass


class DuplicateResourceError(ConfigurationError):
    """A resource identity was declared twice in the same graph."""

    def __init__(self, resource_id: Any):
        self.resource_id = resource_id
        super().__init__(f"Resource '{resource_id}' is already declared")


class CycleError(ConfigurationError):
    """The dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Dependency cycle detected: {' → '.join(cycle)}")


class UnresolvedExportError(ConfigurationError):
    """One or more exports have no resolved value."""

    def __init__(self, names: list[str]):
        self.names = sorted(names)
        super().__init__(f"Unresolved exports: {', '.join(self.names)}")


class ProvisioningError(StackworkError):
    """The backend reported a failure for a specific resource."""

    def __init__(self, resource_id: Any, detail: str):
        self.resource_id = resource_id
        self.detail = detail
        super().__init__(f"Failed to provision '{resource_id}': {detail}")


class DependencyFailed(StackworkError):
    """A resource was never attempted because an ancestor failed."""

    def __init__(self, resource_id: Any, chain: list[str]):
        self.resource_id = resource_id
        self.chain = chain
        super().__init__(
            f"'{resource_id}' skipped, dependency failed: {' → '.join(chain)}"
        )


class TransformError(StackworkError):
    """A transform raised while deriving a value."""
    pass


class ResourceNotFound(StackworkError):
    """The backend has no record of the requested resource."""
    pass


class DeploymentError(StackworkError):
    """A run finished with failed resources or unresolved exports."""

    def __init__(self, result: RunResult):
        self.result = result
        failed = ", ".join(f.resource for f in result.failures) or "none"
        message = f"Deployment failed (failed resources: {failed})"
        if result.unresolved_exports:
            message += f"; unresolved exports: {', '.join(result.unresolved_exports)}"
        super().__init__(message)
