"""
Pydantic models for Stackwork run reports.

This module contains the data returned to callers after a run:
- FailureReason categories for failed resources
- FailureReport describing one failed resource and what it poisoned
- RunResult aggregating resource states, failures and exports
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .errors import DeploymentError


class FailureReason(str, Enum):
    """Why a resource ended up failed."""
    PROVISIONING_ERROR = "ProvisioningError"
    DEPENDENCY_FAILED = "DependencyFailed"
    TRANSFORM_ERROR = "TransformError"


class FailureReport(BaseModel):
    """One failed resource.

    For root failures ``chain`` holds just the resource itself and ``caused``
    lists every dependent it poisoned. For ``DEPENDENCY_FAILED`` resources
    ``chain`` runs from the root failure down to this resource.
    """
    resource: str = Field(..., description="Failed resource identity (kind/name)")
    reason: FailureReason
    detail: str = ""
    chain: List[str] = Field(default_factory=list)
    caused: List[str] = Field(default_factory=list)

    @property
    def root_cause(self) -> str:
        return self.chain[0] if self.chain else self.resource


class RunResult(BaseModel):
    """Outcome of one run of a stack."""
    stack: str
    success: bool
    exports: Dict[str, Any] = Field(default_factory=dict)
    sensitive_exports: List[str] = Field(default_factory=list)
    unresolved_exports: List[str] = Field(default_factory=list)
    failures: List[FailureReport] = Field(default_factory=list)
    states: Dict[str, str] = Field(default_factory=dict)
    order: List[str] = Field(default_factory=list)

    def failure_for(self, resource: str) -> Optional[FailureReport]:
        """Return the failure report for a resource, if it failed."""
        for failure in self.failures:
            if failure.resource == resource:
                return failure
        return None

    @property
    def root_failures(self) -> List[FailureReport]:
        return [f for f in self.failures if f.reason is not FailureReason.DEPENDENCY_FAILED]

    def raise_for_status(self) -> "RunResult":
        """Raise DeploymentError unless the run succeeded."""
        if not self.success:
            raise DeploymentError(self)
        return self
