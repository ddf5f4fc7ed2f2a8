"""In-memory backend that simulates a control plane."""

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any

from stackwork.errors import ResourceNotFound

from .base import Backend

logger = logging.getLogger(__name__)

Handler = Callable[[str, dict[str, Any]], Mapping[str, Any]]


class InMemoryBackend(Backend):
    """Fake control plane keeping provisioned resources in a dict.

    Each kind may have a handler computing outputs from ``(name, inputs)``;
    kinds without a handler echo their inputs back with the name added.
    Every call is recorded in ``events`` as ``(event, "kind/name")`` with
    event one of ``start``, ``finish`` or ``fail``, which makes call
    ordering observable in tests.

    Attributes:
        handlers: Kind to output-computing function
        failures: "kind/name" to error message for calls that must fail
        delays: "kind/name" to seconds to wait before answering
        latency: Default delay for every call
        events: Recorded call events, in order
        store: Outputs of every provisioned resource, by "kind/name"

    Example:
        >>> backend = InMemoryBackend(
        ...     handlers={"Service": lambda name, inputs: {"status": {"ip": "10.0.0.7"}}},
        ...     failures={"Issuer/ca": "webhook not ready"},
        ... )
    """

    def __init__(
        self,
        handlers: Mapping[str, Handler] | None = None,
        failures: Mapping[str, str] | None = None,
        delays: Mapping[str, float] | None = None,
        latency: float = 0.0,
    ):
        self.handlers = dict(handlers or {})
        self.failures = dict(failures or {})
        self.delays = dict(delays or {})
        self.latency = latency
        self.events: list[tuple[str, str]] = []
        self.store: dict[str, dict[str, Any]] = {}

    @property
    def calls(self) -> list[str]:
        """Resources provision() was called for, in call order."""
        return [key for event, key in self.events if event == "start"]

    def index(self, event: str, key: str) -> int:
        """Position of an event in the log (ValueError if absent)."""
        return self.events.index((event, key))

    def seed(self, kind: str, name: str, outputs: Mapping[str, Any]) -> None:
        """Pretend a resource already exists (visible to read())."""
        self.store[f"{kind}/{name}"] = dict(outputs)

    async def provision(self, kind: str, name: str, inputs: dict[str, Any]) -> dict[str, Any]:
        key = f"{kind}/{name}"
        self.events.append(("start", key))
        logger.debug(f"Provisioning {key}")

        delay = self.delays.get(key, self.latency)
        if delay:
            await asyncio.sleep(delay)

        try:
            if key in self.failures:
                raise RuntimeError(self.failures[key])
            handler = self.handlers.get(kind)
            if handler is not None:
                outputs = dict(handler(name, inputs))
            else:
                outputs = {"name": name, **inputs}
        except Exception:
            self.events.append(("fail", key))
            raise

        self.store[key] = outputs
        self.events.append(("finish", key))
        return outputs

    async def read(self, kind: str, name: str) -> dict[str, Any]:
        key = f"{kind}/{name}"
        if key not in self.store:
            raise ResourceNotFound(key)
        return dict(self.store[key])
