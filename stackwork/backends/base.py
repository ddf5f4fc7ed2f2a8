"""Backend contract for Stackwork."""

import asyncio
import inspect
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any

from stackwork.errors import ResourceNotFound


class Backend(ABC):
    """The narrow interface the scheduler uses to create and read resources.

    A backend turns a resource kind, its logical name and fully resolved
    inputs into real infrastructure and reports the resulting output fields.
    Either method may be a plain function or ``async def``; plain functions
    run in a worker thread so slow network calls never stall the scheduler.

    The engine calls ``provision`` at most once per resource per run and never
    retries. Retry policy, if any, belongs to the backend.

    Inputs and outputs are mappings of field name to strings, integers,
    booleans, lists or nested mappings.

    Example:
        class ControlPlaneBackend(Backend):
            async def provision(self, kind, name, inputs):
                response = await self.client.apply(kind, name, inputs)
                return response["status"]
    """

    @abstractmethod
    def provision(self, kind: str, name: str, inputs: dict[str, Any]) -> Mapping[str, Any]:
        """Create the resource and return its output fields.

        Raises:
            Exception: Any error marks the resource failed
        """
        raise NotImplementedError(
            f"{self.__class__.__name__} must implement provision()"
        )

    def read(self, kind: str, name: str) -> Mapping[str, Any]:
        """Return the outputs of an existing resource.

        The default implementation knows no existing resources.

        Raises:
            ResourceNotFound: If the resource does not exist
        """
        raise ResourceNotFound(f"{kind}/{name}")


async def invoke(method: Callable[..., Any], *args: Any) -> Any:
    """Call a backend method that may be sync or async without blocking the loop."""
    if inspect.iscoroutinefunction(method):
        return await method(*args)
    return await asyncio.to_thread(method, *args)
