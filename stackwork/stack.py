"""
Stack - the declaration surface handed to a program's build function.

A Stack owns one dependency graph and one export registry for a single run.
Nothing is global, so independent stacks can be declared and run side by
side in the same process.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from .backends.base import Backend
from .errors import ConfigurationError
from .exports import ExportRegistry
from .graph import DependencyGraph
from .models import RunResult
from .output import Output
from .resources.base import Resource, ResourceId, ResourceState
from .scheduler import Scheduler

logger = logging.getLogger(__name__)


class Stack:
    """A set of declared resources and exports, provisioned once.

    Example:
        def build(stack: Stack) -> None:
            ca = stack.resource("SelfSignedCert", "ca", {"is_ca_certificate": True})
            issuer = stack.resource("Issuer", "ca", {"secret_name": "ca"}, depends_on=[ca])
            svc = stack.resource("Service", "ping", {"type": "LoadBalancer"})
            stack.export("pingURL", svc.output("ip").apply(lambda ip: f"https://{ip}:9443"))
    """

    def __init__(self, name: str = "dev"):
        self.name = name
        self.graph = DependencyGraph()
        self.exports = ExportRegistry()
        self._ran = False

    def resource(
        self,
        kind: str,
        name: str,
        inputs: Mapping[str, Any] | None = None,
        *,
        depends_on: Iterable[Resource] = (),
        secret_outputs: Iterable[str] = (),
        description: str | None = None,
    ) -> Resource:
        """Declare a resource and add it to this stack.

        Raises:
            DuplicateResourceError: If (kind, name) is already declared
        """
        resource = Resource(
            kind=kind,
            name=name,
            inputs=dict(inputs or {}),
            depends_on=list(depends_on),
            secret_outputs=list(secret_outputs),
            description=description,
        )
        return self.add(resource)

    def add(self, resource: Resource) -> Resource:
        """Add an already constructed resource."""
        return self.graph.add_node(resource)

    def export(self, name: str, value: Any) -> Output:
        """Export a value, surfaced in the run result once resolved."""
        return self.exports.export(name, value)

    def finalize(self) -> list[ResourceId]:
        """Build the graph and validate exports.

        Returns:
            Resource identities in deployment order

        Raises:
            ConfigurationError: For duplicate, undeclared or cyclic dependencies
                and exports no resource can resolve
        """
        order = self.graph.build()
        self.exports.validate(self.graph)
        return order

    async def run(
        self,
        backend: Backend,
        concurrency_limit: int | None = None,
        check_existing: bool = False,
    ) -> RunResult:
        """Provision the stack and report the outcome.

        Configuration errors are raised before any backend call. Provisioning
        failures never raise; they are reported in the returned RunResult.
        """
        if self._ran:
            raise ConfigurationError(f"Stack '{self.name}' has already been run")
        self.finalize()
        self._ran = True

        scheduler = Scheduler(
            backend,
            concurrency_limit=concurrency_limit,
            check_existing=check_existing,
        )
        failures = await scheduler.run(self.graph)

        unresolved = self.exports.unresolved()
        if unresolved:
            logger.error(f"Unresolved exports: {', '.join(unresolved)}")

        success = (
            not failures
            and not unresolved
            and all(r.state is ResourceState.READY for r in self.graph)
        )

        return RunResult(
            stack=self.name,
            success=success,
            exports=self.exports.resolved(),
            sensitive_exports=self.exports.sensitive_names(),
            unresolved_exports=unresolved,
            failures=failures,
            states={str(r.id): r.state.value for r in self.graph},
            order=[str(resource_id) for resource_id in self.graph.order],
        )
