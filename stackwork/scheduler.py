"""
Scheduler - provisions resources in dependency order with bounded concurrency.

The scheduler is the only code that changes resource state. It runs a single
coordination loop on the event loop:

1. Every PENDING resource whose dependencies are all READY goes into a
   ready set ordered by topological position
2. Ready resources are dispatched to the backend as tasks, up to the
   concurrency limit
3. When a task completes, the resource becomes READY (resolving its promised
   Outputs) and dependents whose last dependency just became READY join the
   ready set; or it becomes FAILED and every pending transitive dependent is
   failed with DependencyFailed without contacting the backend

With a concurrency limit of 1 the provisioning order is deterministic.
"""

import asyncio
import heapq
import logging
from collections import deque
from collections.abc import Mapping
from typing import Any

from .backends.base import Backend, invoke
from .errors import DependencyFailed, ProvisioningError, ResourceNotFound, TransformError
from .graph import DependencyGraph
from .models import FailureReason, FailureReport
from .output import is_sensitive, redact
from .resources.base import Resource, ResourceId, ResourceState

logger = logging.getLogger(__name__)


class Scheduler:
    """Drives resources from PENDING to READY or FAILED.

    Attributes:
        backend: Backend used to provision resources
        concurrency_limit: Maximum concurrent backend calls (None = unbounded)
        check_existing: Ask backend.read() first and adopt existing resources
    """

    def __init__(
        self,
        backend: Backend,
        concurrency_limit: int | None = None,
        check_existing: bool = False,
    ):
        if concurrency_limit is not None and concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")
        self.backend = backend
        self.concurrency_limit = concurrency_limit
        self.check_existing = check_existing
        self._position: dict[ResourceId, int] = {}

    def _has_capacity(self, in_flight: int) -> bool:
        return self.concurrency_limit is None or in_flight < self.concurrency_limit

    async def run(self, graph: DependencyGraph) -> list[FailureReport]:
        """Provision every resource in the graph.

        Builds the graph if needed, so configuration errors surface before
        any backend call.

        Args:
            graph: Dependency graph to provision

        Returns:
            Failure reports in topological order (empty on full success)
        """
        order = graph.build()
        self._position = {resource_id: i for i, resource_id in enumerate(order)}

        waiting = {resource_id: graph.dependencies(resource_id) for resource_id in order}
        ready: list[tuple[int, ResourceId]] = [
            (self._position[resource_id], resource_id)
            for resource_id in order
            if not waiting[resource_id]
        ]
        heapq.heapify(ready)

        in_flight: dict[asyncio.Task, Resource] = {}
        failures: dict[ResourceId, FailureReport] = {}

        logger.info(
            f"Scheduling {len(order)} resources "
            f"(concurrency limit: {self.concurrency_limit or 'unbounded'})"
        )

        try:
            while ready or in_flight:
                # Dispatch eligible resources up to the limit
                while ready and self._has_capacity(len(in_flight)):
                    _, resource_id = heapq.heappop(ready)
                    resource = graph.get(resource_id)
                    if resource.state is not ResourceState.PENDING:
                        continue

                    try:
                        inputs = resource.resolved_inputs()
                    except TransformError as e:
                        self._fail(graph, resource, FailureReason.TRANSFORM_ERROR, e, failures)
                        continue
                    except Exception as e:
                        self._fail(graph, resource, FailureReason.DEPENDENCY_FAILED, e, failures)
                        continue

                    resource.mark_provisioning()
                    logger.info(f"Provisioning {resource_id}")
                    logger.debug(f"{resource_id} inputs: {redact(resource.inputs)}")

                    task = asyncio.create_task(
                        self._provision(resource, inputs),
                        name=f"provision:{resource_id}",
                    )
                    in_flight[task] = resource

                if not in_flight:
                    continue

                done, _ = await asyncio.wait(
                    in_flight, return_when=asyncio.FIRST_COMPLETED
                )

                for task in sorted(done, key=lambda t: self._position[in_flight[t].id]):
                    resource = in_flight.pop(task)
                    try:
                        outputs = task.result()
                    except ProvisioningError as e:
                        self._fail(graph, resource, FailureReason.PROVISIONING_ERROR, e, failures)
                        continue

                    resource.mark_ready(outputs)
                    logger.info(f"Provisioned {resource.id}")

                    for dependent_id in self._sorted(graph.dependents(resource.id)):
                        waiting[dependent_id].discard(resource.id)
                        dependent = graph.get(dependent_id)
                        if not waiting[dependent_id] and dependent.state is ResourceState.PENDING:
                            heapq.heappush(ready, (self._position[dependent_id], dependent_id))
        finally:
            # Only reached with tasks left when the run itself is cancelled
            for task in in_flight:
                task.cancel()
            if in_flight:
                await asyncio.gather(*in_flight, return_exceptions=True)

        ready_count = sum(1 for r in graph if r.state is ResourceState.READY)
        logger.info(
            f"Scheduling complete: {ready_count} ready, {len(failures)} failed"
        )

        return [failures[rid] for rid in self._sorted(failures)]

    async def _provision(self, resource: Resource, inputs: dict[str, Any]) -> dict[str, Any]:
        """Call the backend once for a resource.

        Raises:
            ProvisioningError: Wrapping any backend failure
        """
        resource_id = resource.id
        try:
            if self.check_existing:
                try:
                    outputs = await invoke(self.backend.read, resource_id.kind, resource_id.name)
                    logger.info(f"Adopted existing resource {resource_id}")
                    return self._check_outputs(resource_id, outputs)
                except ResourceNotFound:
                    logger.debug(f"{resource_id} not found, provisioning")

            outputs = await invoke(
                self.backend.provision, resource_id.kind, resource_id.name, inputs
            )
        except Exception as e:
            if is_sensitive(resource.inputs):
                # Backend errors may echo secret inputs
                raise ProvisioningError(
                    resource_id, f"{type(e).__name__} while provisioning with secret inputs"
                ) from e
            if isinstance(e, ProvisioningError):
                raise
            raise ProvisioningError(resource_id, f"{type(e).__name__}: {e}") from e

        return self._check_outputs(resource_id, outputs)

    def _check_outputs(self, resource_id: ResourceId, outputs: Any) -> dict[str, Any]:
        if outputs is None:
            return {}
        if not isinstance(outputs, Mapping):
            raise ProvisioningError(
                resource_id,
                f"backend returned {type(outputs).__name__}, expected a mapping",
            )
        return dict(outputs)

    def _sorted(self, resource_ids) -> list[ResourceId]:
        return sorted(resource_ids, key=self._position.__getitem__)

    def _fail(
        self,
        graph: DependencyGraph,
        resource: Resource,
        reason: FailureReason,
        error: BaseException,
        failures: dict[ResourceId, FailureReport],
    ) -> None:
        """Fail a resource and poison every pending transitive dependent."""
        report = FailureReport(
            resource=str(resource.id),
            reason=reason,
            detail=str(error),
            chain=[str(resource.id)],
        )
        resource.mark_failed(report, error)
        failures[resource.id] = report
        logger.error(f"{resource.id} failed ({reason.value}): {error}")

        queue: deque[tuple[ResourceId, list[str]]] = deque([(resource.id, report.chain)])
        while queue:
            current, chain = queue.popleft()
            for dependent_id in self._sorted(graph.dependents(current)):
                dependent = graph.get(dependent_id)
                if dependent.state is not ResourceState.PENDING:
                    continue

                dependent_chain = chain + [str(dependent_id)]
                dependent_error = DependencyFailed(dependent_id, dependent_chain)
                dependent_report = FailureReport(
                    resource=str(dependent_id),
                    reason=FailureReason.DEPENDENCY_FAILED,
                    detail=str(dependent_error),
                    chain=dependent_chain,
                )
                dependent.mark_failed(dependent_report, dependent_error)
                failures[dependent_id] = dependent_report
                report.caused.append(str(dependent_id))
                logger.warning(f"Skipping {dependent_id}: {' → '.join(dependent_chain)}")

                queue.append((dependent_id, dependent_chain))
