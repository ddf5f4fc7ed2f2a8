"""
Dependency graph for Stackwork resources.

The graph unions explicit dependencies (``depends_on``) with implicit ones
inferred from the Outputs referenced by each resource's inputs. ``build()``
validates the graph, rejects cycles and freezes it for scheduling.
"""

import logging
from collections.abc import Iterator

from .errors import ConfigurationError, CycleError, DuplicateResourceError
from .resources.base import Resource, ResourceId

logger = logging.getLogger(__name__)


class DependencyGraph:
    """Directed acyclic graph over resource identities.

    Example:
        >>> graph = DependencyGraph()
        >>> graph.add_node(ca)
        >>> graph.add_node(issuer)   # issuer.depends_on == [ca]
        >>> graph.build()
        [ResourceId(kind='SelfSignedCert', name='ca'), ResourceId(kind='Issuer', name='ca')]
    """

    def __init__(self):
        self._nodes: dict[ResourceId, Resource] = {}
        self._dependencies: dict[ResourceId, set[ResourceId]] = {}
        self._dependents: dict[ResourceId, set[ResourceId]] = {}
        self._order: list[ResourceId] | None = None

    def add_node(self, resource: Resource) -> Resource:
        """Add a resource to the graph.

        Raises:
            TypeError: If resource is not a Resource
            DuplicateResourceError: If its identity is already declared
            ConfigurationError: If the graph is already built
        """
        if not isinstance(resource, Resource):
            raise TypeError(
                f"Can only add Resource objects, got {type(resource).__name__}"
            )
        if self._order is not None:
            raise ConfigurationError(
                f"Cannot add '{resource.id}': the graph is already built"
            )
        if resource.id in self._nodes:
            raise DuplicateResourceError(resource.id)

        self._nodes[resource.id] = resource
        logger.debug(f"Added resource to graph: {resource.id}")
        return resource

    @property
    def built(self) -> bool:
        return self._order is not None

    @property
    def order(self) -> list[ResourceId]:
        """Stable topological order (dependencies first)."""
        if self._order is None:
            raise ConfigurationError("Graph has not been built")
        return list(self._order)

    @property
    def nodes(self) -> list[Resource]:
        return list(self._nodes.values())

    def get(self, resource_id: ResourceId) -> Resource:
        return self._nodes[resource_id]

    def dependencies(self, resource_id: ResourceId) -> set[ResourceId]:
        return set(self._dependencies.get(resource_id, ()))

    def dependents(self, resource_id: ResourceId) -> set[ResourceId]:
        return set(self._dependents.get(resource_id, ()))

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._nodes

    def __iter__(self) -> Iterator[Resource]:
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def build(self) -> list[ResourceId]:
        """Validate and freeze the graph.

        This method performs the following operations:
        1. Edge Collection: explicit ∪ implicit dependencies per resource
        2. Validation: every dependency must be declared in this graph
        3. Cycle Detection: DFS over the dependency edges
        4. Topological Sort: dependencies first, declaration order breaks ties

        Building twice returns the existing order.

        Returns:
            Resource identities in deployment order

        Raises:
            ConfigurationError: For undeclared dependencies
            CycleError: If a dependency cycle is detected
        """
        if self._order is not None:
            return list(self._order)

        position = {resource_id: i for i, resource_id in enumerate(self._nodes)}

        # Step 1: Collect edges
        edges: dict[ResourceId, list[ResourceId]] = {}
        for resource_id, resource in self._nodes.items():
            deps = resource.dependencies()

            # Step 2: Reject dependencies outside the graph
            unknown = sorted(str(dep) for dep in deps if dep not in self._nodes)
            if unknown:
                raise ConfigurationError(
                    f"'{resource_id}' depends on undeclared resources: {', '.join(unknown)}"
                )
            if any(output.is_orphaned() for output in resource.input_outputs()):
                raise ConfigurationError(
                    f"'{resource_id}' has an input waiting on a value no resource produces"
                )

            edges[resource_id] = sorted(deps, key=position.__getitem__)

        # Step 3: Detect cycles
        self._detect_cycles(edges)
        logger.debug("No dependency cycles detected")

        # Step 4: Topological sort
        order = self._topological_sort(edges)

        self._dependencies = {rid: set(deps) for rid, deps in edges.items()}
        self._dependents = {rid: set() for rid in self._nodes}
        for resource_id, deps in edges.items():
            for dep in deps:
                self._dependents[dep].add(resource_id)

        for resource in self._nodes.values():
            resource.seal()

        self._order = order
        logger.debug(f"Topological sort complete: {[str(r) for r in order]}")
        return list(order)

    def _detect_cycles(self, edges: dict[ResourceId, list[ResourceId]]) -> None:
        visited: set[ResourceId] = set()
        rec_stack: set[ResourceId] = set()

        def detect_cycle_dfs(resource_id: ResourceId, path: list[ResourceId]) -> None:
            """DFS to detect cycles in resource dependencies.

            Raises:
                CycleError: If a cycle is detected
            """
            visited.add(resource_id)
            rec_stack.add(resource_id)
            path.append(resource_id)

            for dep in edges[resource_id]:
                if dep not in visited:
                    detect_cycle_dfs(dep, path)
                elif dep in rec_stack:
                    cycle = path[path.index(dep):] + [dep]
                    raise CycleError([str(r) for r in cycle])

            rec_stack.remove(resource_id)
            path.pop()

        for resource_id in edges:
            if resource_id not in visited:
                detect_cycle_dfs(resource_id, [])

    def _topological_sort(
        self, edges: dict[ResourceId, list[ResourceId]]
    ) -> list[ResourceId]:
        visited: set[ResourceId] = set()
        result: list[ResourceId] = []

        def topological_dfs(resource_id: ResourceId) -> None:
            visited.add(resource_id)

            # Visit all dependencies first
            for dep in edges[resource_id]:
                if dep not in visited:
                    topological_dfs(dep)

            # Add current resource after its dependencies
            result.append(resource_id)

        for resource_id in edges:
            if resource_id not in visited:
                topological_dfs(resource_id)

        return result
