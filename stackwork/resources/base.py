"""Base resource class for Stackwork."""

import logging
from enum import Enum
from typing import Any, NamedTuple, Self

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from stackwork.errors import ConfigurationError, ProvisioningError
from stackwork.models import FailureReport
from stackwork.output import Output, find_outputs, unwrap

logger = logging.getLogger(__name__)


class SealedInputs(dict):
    """Inputs of a resource whose graph is built. Any change is rejected."""

    def __init__(self, resource_id: "ResourceId", inputs: dict[str, Any]):
        super().__init__(inputs)
        self.resource_id = resource_id

    def _reject(self, *args: Any, **kwargs: Any) -> None:
        raise ConfigurationError(
            f"Cannot change inputs of '{self.resource_id}' after the graph is built"
        )

    __setitem__ = __delitem__ = __ior__ = _reject
    clear = pop = popitem = setdefault = update = _reject


class ResourceId(NamedTuple):
    """Identity of a resource within a graph."""
    kind: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind}/{self.name}"


class ResourceState(str, Enum):
    """Lifecycle state of a resource during a run."""
    PENDING = "pending"
    PROVISIONING = "provisioning"
    READY = "ready"
    FAILED = "failed"


_TRANSITIONS: dict[ResourceState, set[ResourceState]] = {
    ResourceState.PENDING: {ResourceState.PROVISIONING, ResourceState.FAILED},
    ResourceState.PROVISIONING: {ResourceState.READY, ResourceState.FAILED},
    ResourceState.READY: set(),
    ResourceState.FAILED: set(),
}


class Resource(BaseModel):
    """A declared unit of infrastructure.

    Resources are opaque to the engine: ``kind`` selects how the backend
    provisions it and ``inputs`` is passed through once every Output inside
    it is known. Inputs may nest Outputs anywhere inside dicts, lists and
    tuples.

    Dependencies:
    A resource is provisioned only after every resource it depends on is
    READY. Dependencies come from two places:
    - Explicit: ``depends_on`` or ``.depend_on(other)``
    - Implicit: any Output in ``inputs`` that was derived from another
      resource's output

    Outputs:
    ``resource.output("field")`` returns a promised Output that resolves to
    the matching field of the backend's result once the resource is READY,
    or fails if the resource fails.

    Attributes:
        kind: Opaque resource kind understood by the backend (e.g. "Certificate")
        name: Logical name, unique per kind within a graph
        inputs: Field name to literal value or Output
        depends_on: Resources that must be READY first
        secret_outputs: Output fields whose promised Outputs are sensitive
        description: Optional human-readable description

    Example:
        >>> ca_key = Resource(kind="PrivateKey", name="ca", inputs={"algorithm": "RSA"},
        ...                   secret_outputs=["private_key_pem"])
        >>> secret = Resource(
        ...     kind="Secret",
        ...     name="ca",
        ...     inputs={"data": {"tls.key": ca_key.output("private_key_pem").apply(to_base64)}},
        ... )
        >>> secret.dependencies()
        {ResourceId(kind='PrivateKey', name='ca')}
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: str
    name: str
    inputs: dict[str, Any] = Field(default_factory=dict)
    depends_on: list["Resource"] = Field(default_factory=list)
    secret_outputs: list[str] = Field(default_factory=list)
    description: str | None = None

    _state: ResourceState = PrivateAttr(default=ResourceState.PENDING)
    _promised: dict[str, Output] = PrivateAttr(default_factory=dict)
    _outputs: dict[str, Any] | None = PrivateAttr(default=None)
    _failure: FailureReport | None = PrivateAttr(default=None)
    _error: BaseException | None = PrivateAttr(default=None)
    _sealed: bool = PrivateAttr(default=False)

    @field_validator("kind", "name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must be a non-empty string")
        return value

    @property
    def id(self) -> ResourceId:
        return ResourceId(self.kind, self.name)

    @property
    def state(self) -> ResourceState:
        return self._state

    @property
    def outputs(self) -> dict[str, Any] | None:
        """Concrete outputs once READY, otherwise None."""
        return dict(self._outputs) if self._outputs is not None else None

    @property
    def failure(self) -> FailureReport | None:
        return self._failure

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def sealed(self) -> bool:
        return self._sealed

    def output(self, field: str) -> Output:
        """Promise the value of an output field.

        Calling this twice with the same field returns the same Output.

        Args:
            field: Output field name reported by the backend

        Returns:
            Output resolving when this resource becomes READY
        """
        promised = self._promised.get(field)
        if promised is not None:
            return promised

        promised = Output(
            origin=(self.id, field),
            sensitive=field in self.secret_outputs,
        )
        self._promised[field] = promised

        # Late promises on settled resources settle at once
        if self._state is ResourceState.READY:
            self._settle_promise(field, promised)
        elif self._state is ResourceState.FAILED:
            promised.reject(self._error)

        return promised

    def depend_on(self, *resources: "Resource") -> Self:
        """Add explicit dependencies (chainable).

        Raises:
            TypeError: If an argument is not a Resource
            ConfigurationError: If the graph containing this resource is built
        """
        if self._sealed:
            raise ConfigurationError(
                f"Cannot add dependencies to '{self.id}' after the graph is built"
            )
        for resource in resources:
            if not isinstance(resource, Resource):
                raise TypeError(
                    f"Can only depend on Resource objects, got {type(resource).__name__}"
                )
            if any(resource is existing for existing in self.depends_on):
                logger.debug(f"'{self.id}' already depends on '{resource.id}', skipping")
                continue
            self.depends_on.append(resource)
            logger.debug(f"{self.id} depends on {resource.id}")
        return self

    def explicit_dependencies(self) -> set[ResourceId]:
        return {resource.id for resource in self.depends_on}

    def implicit_dependencies(self) -> set[ResourceId]:
        """Resources whose outputs feed this resource's inputs."""
        found: set[ResourceId] = set()
        for output in find_outputs(self.inputs):
            found |= output.origins()
        return found

    def dependencies(self) -> set[ResourceId]:
        """Explicit dependencies plus every producer reachable through input Outputs."""
        return self.explicit_dependencies() | self.implicit_dependencies()

    def input_outputs(self) -> list[Output]:
        return find_outputs(self.inputs)

    def resolved_inputs(self) -> dict[str, Any]:
        """Inputs with every Output replaced by its concrete value.

        Raises:
            ValueError: If an input Output is still pending
            BaseException: The error of an input Output that failed
        """
        return unwrap(self.inputs)

    def seal(self) -> None:
        """Freeze inputs and dependencies once the graph is built."""
        if self._sealed:
            return
        self.__dict__["inputs"] = SealedInputs(self.id, self.inputs)
        self.__dict__["depends_on"] = tuple(self.depends_on)
        self._sealed = True

    def __setattr__(self, name: str, value: Any) -> None:
        if name in ("inputs", "depends_on") and getattr(self, "_sealed", False):
            raise ConfigurationError(
                f"Cannot replace {name} of '{self.id}' after the graph is built"
            )
        super().__setattr__(name, value)

    # ------------------------------------------------------------------
    # State transitions (only the scheduler calls these)
    # ------------------------------------------------------------------

    def _transition(self, new_state: ResourceState) -> None:
        if new_state not in _TRANSITIONS[self._state]:
            raise RuntimeError(
                f"Invalid state transition for '{self.id}': "
                f"{self._state.value} → {new_state.value}"
            )
        logger.debug(f"{self.id}: {self._state.value} → {new_state.value}")
        self._state = new_state

    def mark_provisioning(self) -> None:
        self._transition(ResourceState.PROVISIONING)

    def mark_ready(self, outputs: dict[str, Any]) -> None:
        """Record backend outputs and resolve every promised Output."""
        self._transition(ResourceState.READY)
        self._outputs = dict(outputs)
        for field, promised in list(self._promised.items()):
            self._settle_promise(field, promised)

    def mark_failed(self, failure: FailureReport, error: BaseException) -> None:
        """Record the failure and fail every promised Output."""
        self._transition(ResourceState.FAILED)
        self._failure = failure
        self._error = error
        for promised in list(self._promised.values()):
            promised.reject(error)

    def _settle_promise(self, field: str, promised: Output) -> None:
        if field in self._outputs:
            promised.resolve(self._outputs[field])
        else:
            promised.reject(
                ProvisioningError(self.id, f"backend returned no output field '{field}'")
            )

    def __repr__(self) -> str:
        return f"Resource({self.id}, state={self._state.value})"

    def __str__(self) -> str:
        return str(self.id)
