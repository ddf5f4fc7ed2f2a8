"""Export registry - named program outputs surfaced at the end of a run."""

import logging
from collections.abc import Iterator
from typing import Any

from .errors import ConfigurationError, UnresolvedExportError
from .graph import DependencyGraph
from .output import Output

logger = logging.getLogger(__name__)


class ExportRegistry:
    """Map of export name to Output, scoped to a single stack.

    Example:
        >>> exports = ExportRegistry()
        >>> exports.export("pingURL", ping.output("status").apply(to_url))
        >>> exports.unresolved()
        ['pingURL']
    """

    def __init__(self):
        self._exports: dict[str, Output] = {}

    def export(self, name: str, value: Any) -> Output:
        """Register an export. Literals are wrapped as resolved Outputs.

        Raises:
            ConfigurationError: If the name is empty or already exported
        """
        if not name:
            raise ConfigurationError("Export name must be a non-empty string")
        if name in self._exports:
            raise ConfigurationError(f"Export '{name}' is already registered")

        output = Output.of(value)
        self._exports[name] = output
        logger.debug(f"Registered export '{name}': {output!r}")
        return output

    def get(self, name: str) -> Output:
        return self._exports[name]

    def __contains__(self, name: object) -> bool:
        return name in self._exports

    def __iter__(self) -> Iterator[str]:
        return iter(self._exports)

    def __len__(self) -> int:
        return len(self._exports)

    def validate(self, graph: DependencyGraph) -> None:
        """Reject exports that no resource in the graph can ever resolve.

        Raises:
            UnresolvedExportError: Naming every such export
        """
        invalid = [
            name
            for name, output in self._exports.items()
            if output.is_orphaned()
            or any(origin not in graph for origin in output.origins())
        ]
        if invalid:
            raise UnresolvedExportError(invalid)

    def unresolved(self) -> list[str]:
        """Names of exports without a concrete value (pending or failed)."""
        return [name for name, output in self._exports.items() if not output.is_resolved]

    def resolved(self) -> dict[str, Any]:
        """Concrete values of every resolved export."""
        return {
            name: output.value
            for name, output in self._exports.items()
            if output.is_resolved
        }

    def sensitive_names(self) -> list[str]:
        return [name for name, output in self._exports.items() if output.sensitive]

    def collect(self) -> dict[str, Any]:
        """Return every export value.

        Raises:
            UnresolvedExportError: If any export is unresolved
        """
        unresolved = self.unresolved()
        if unresolved:
            raise UnresolvedExportError(unresolved)
        return self.resolved()
