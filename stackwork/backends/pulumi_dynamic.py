"""Backend driving Pulumi dynamic providers directly."""

import logging
from collections.abc import Mapping
from typing import Any

from pulumi.dynamic import ResourceProvider

from stackwork.errors import ResourceNotFound

from .base import Backend

logger = logging.getLogger(__name__)


class DynamicProviderBackend(Backend):
    """Provision resources with ``pulumi.dynamic.ResourceProvider`` instances.

    Each kind maps to a provider. ``provision`` runs the provider's ``check``
    and then ``create``, returning the created id under ``"id"`` alongside the
    provider's outputs. Created ids are remembered so that ``read`` can ask
    the provider for the current state of resources created in this process.

    Providers are plain synchronous Python, so the scheduler runs these
    calls in worker threads.

    Example:
        >>> backend = DynamicProviderBackend({"File": FileProvider()})
    """

    def __init__(self, providers: Mapping[str, ResourceProvider]):
        self.providers = dict(providers)
        self._created: dict[tuple[str, str], tuple[str, dict[str, Any]]] = {}

    def _provider(self, kind: str) -> ResourceProvider:
        try:
            return self.providers[kind]
        except KeyError:
            raise ValueError(f"No dynamic provider registered for kind '{kind}'") from None

    def provision(self, kind: str, name: str, inputs: dict[str, Any]) -> dict[str, Any]:
        provider = self._provider(kind)

        check = provider.check({}, dict(inputs))
        if check.failures:
            reasons = "; ".join(f"{f.property}: {f.reason}" for f in check.failures)
            raise ValueError(f"Invalid inputs for {kind}/{name}: {reasons}")
        props = dict(check.inputs) if check.inputs is not None else dict(inputs)

        result = provider.create(props)
        outs = dict(result.outs or {})
        self._created[(kind, name)] = (result.id, outs)
        logger.debug(f"Dynamic provider created {kind}/{name} (id: {result.id})")

        return {"id": result.id, **outs}

    def read(self, kind: str, name: str) -> dict[str, Any]:
        created = self._created.get((kind, name))
        if created is None:
            raise ResourceNotFound(f"{kind}/{name}")

        resource_id, props = created
        result = self._provider(kind).read(resource_id, props)
        if result is None or not result.id:
            raise ResourceNotFound(f"{kind}/{name}")
        return {"id": result.id, **dict(result.outs or {})}
