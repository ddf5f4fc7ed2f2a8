"""Deferred values for Stackwork.

An ``Output`` holds a value that may not be known until a resource has been
provisioned. Outputs are small explicit state machines:

    PENDING ──resolve──▶ RESOLVED
       │
       └────reject────▶ FAILED

Root outputs are promised by a resource (``resource.output("status")``) and
carry an origin pointing back at that resource. Derived outputs are created
with ``apply()`` or ``Output.all()`` and carry their parent outputs plus a
transform. Derived outputs subscribe to their parents and settle from the
parent's state change, so nothing ever blocks while waiting for a value.

Example:
    >>> cert = Output.of("-----BEGIN CERTIFICATE-----")
    >>> encoded = cert.apply(to_base64)
    >>> encoded.is_resolved
    True

    >>> status = service.output("status")          # pending until provisioned
    >>> url = status["ingress"].apply(lambda ingress: f"https://{ingress[0]['ip']}:9443")
    >>> url.origins()
    {ResourceId(kind='Service', name='ping')}
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

from .errors import TransformError

if TYPE_CHECKING:
    from .resources.base import ResourceId

logger = logging.getLogger(__name__)

SECRET_PLACEHOLDER = "[secret]"

# Listener notifications waiting to run, drained by the outermost _settle().
# Keeps settling iterative however long a derivation chain gets.
_notifications: deque[tuple[Callable[["Output"], None], "Output"]] = deque()
_draining = False


class OutputState(str, Enum):
    """Lifecycle state of an Output."""
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


class Output:
    """A value that may not be known yet.

    Attributes:
        state: Current OutputState
        sensitive: True if this value, or anything it was derived from, is secret
    """

    def __init__(
        self,
        *,
        origin: tuple[ResourceId, str] | None = None,
        parents: tuple[Output, ...] = (),
        transform: Callable[[list[Any]], Any] | None = None,
        sensitive: bool = False,
    ):
        """Create a pending Output.

        Most callers should use ``Output.of``, ``apply`` or
        ``Resource.output`` rather than constructing Outputs directly.

        Args:
            origin: (resource id, output field) for outputs promised by a resource
            parents: Outputs this value is derived from
            transform: Function receiving the list of parent values
            sensitive: Mark the value secret from the start
        """
        self._state = OutputState.PENDING
        self._value: Any = None
        self._error: BaseException | None = None
        self._origin = origin
        self._parents = tuple(parents)
        self._transform = transform
        self._sensitive = sensitive
        self._listeners: list[Callable[[Output], None]] = []

        # Settles immediately when every parent is already settled
        for parent in self._parents:
            parent._subscribe(self._on_parent_settled)
        if not self._parents and transform is not None:
            self._run_transform()

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def of(cls, value: Any) -> Output:
        """Wrap a known value. Outputs are returned unchanged."""
        if isinstance(value, Output):
            return value
        output = cls()
        output._settle(OutputState.RESOLVED, value=value)
        return output

    @classmethod
    def secret(cls, value: Any) -> Output:
        """Wrap a value and mark it sensitive."""
        if isinstance(value, Output):
            return value.as_secret()
        output = cls(sensitive=True)
        output._settle(OutputState.RESOLVED, value=value)
        return output

    @classmethod
    def failed(cls, error: BaseException) -> Output:
        """Create an Output that has already failed with ``error``."""
        output = cls()
        output._settle(OutputState.FAILED, error=error)
        return output

    @classmethod
    def all(cls, *values: Any) -> Output:
        """Combine values into one Output resolving to a list.

        Literals are accepted alongside Outputs. The result fails as soon as
        any input fails and is sensitive if any input is sensitive.

        Example:
            >>> Output.all(host, port).apply(lambda v: f"{v[0]}:{v[1]}")
        """
        parents = tuple(cls.of(value) for value in values)
        return cls(parents=parents, transform=list)

    @classmethod
    def concat(cls, *parts: Any) -> Output:
        """Concatenate literals and Outputs into a string Output."""
        return cls.all(*parts).apply(lambda values: "".join(str(v) for v in values))

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def apply(self, fn: Callable[[Any], Any]) -> Output:
        """Derive a new Output by running ``fn`` on this value once it is known.

        If this Output is already resolved, ``fn`` runs immediately. If it is
        pending, ``fn`` runs exactly once when it resolves. If it fails, the
        derived Output fails with the same error and ``fn`` never runs.
        Exceptions raised by ``fn`` never escape; the derived Output fails
        with a ``TransformError`` instead.

        Args:
            fn: Function applied to the concrete value

        Returns:
            Derived Output
        """
        return Output(
            parents=(self,),
            transform=lambda values: fn(values[0]),
        )

    def as_secret(self) -> Output:
        """Derive an Output with the same value, marked sensitive."""
        return Output(parents=(self,), transform=lambda values: values[0], sensitive=True)

    def mark_secret(self) -> Output:
        """Mark this Output sensitive in place. There is no way to unmark it."""
        self._sensitive = True
        return self

    def __getitem__(self, key: Any) -> Output:
        return self.apply(lambda value: value[key])

    def __iter__(self):
        raise TypeError(
            "'Output' object is not iterable, use apply() to work with its value"
        )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> OutputState:
        return self._state

    @property
    def is_pending(self) -> bool:
        return self._state is OutputState.PENDING

    @property
    def is_resolved(self) -> bool:
        return self._state is OutputState.RESOLVED

    @property
    def is_failed(self) -> bool:
        return self._state is OutputState.FAILED

    @property
    def sensitive(self) -> bool:
        if self._sensitive:
            return True

        seen: set[int] = set()
        stack: list[Output] = list(self._parents)
        while stack:
            output = stack.pop()
            if id(output) in seen:
                continue
            seen.add(id(output))
            if output._sensitive:
                # One-way: cache once any ancestor is secret
                self._sensitive = True
                return True
            stack.extend(output._parents)
        return False

    @property
    def value(self) -> Any:
        """The concrete value.

        Raises:
            ValueError: If the value is not known yet
            BaseException: The failure error if this Output failed
        """
        if self._state is OutputState.RESOLVED:
            return self._value
        if self._state is OutputState.FAILED:
            raise self._error
        raise ValueError(f"{self!r} is not resolved yet")

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def origin(self) -> tuple[ResourceId, str] | None:
        return self._origin

    def origins(self) -> set[ResourceId]:
        """Resource identities this value is ultimately derived from.

        Pure walk over the parent chain; used to infer implicit dependencies.
        """
        found: set[ResourceId] = set()
        seen: set[int] = set()
        stack: list[Output] = [self]
        while stack:
            output = stack.pop()
            if id(output) in seen:
                continue
            seen.add(id(output))
            if output._origin is not None:
                found.add(output._origin[0])
            stack.extend(output._parents)
        return found

    def is_orphaned(self) -> bool:
        """True if this value waits on a pending root that no resource produces."""
        seen: set[int] = set()
        stack: list[Output] = [self]
        while stack:
            output = stack.pop()
            if id(output) in seen or not output.is_pending:
                continue
            seen.add(id(output))
            if not output._parents and output._origin is None:
                return True
            stack.extend(output._parents)
        return False

    def __repr__(self) -> str:
        if self._state is OutputState.RESOLVED:
            shown = SECRET_PLACEHOLDER if self.sensitive else repr(self._value)
            return f"Output({shown})"
        if self._state is OutputState.FAILED:
            return f"Output(<failed: {type(self._error).__name__}>)"
        if self._origin is not None:
            resource_id, field = self._origin
            return f"Output(<pending {resource_id}.{field}>)"
        return "Output(<pending>)"

    # ------------------------------------------------------------------
    # Resolution (driven by the scheduler through Resource)
    # ------------------------------------------------------------------

    def resolve(self, value: Any) -> bool:
        """Resolve a pending Output. Returns False if it was already settled."""
        if self._state is not OutputState.PENDING:
            logger.debug(f"Ignoring repeated resolution of {self!r}")
            return False
        self._settle(OutputState.RESOLVED, value=value)
        return True

    def reject(self, error: BaseException) -> bool:
        """Fail a pending Output. Returns False if it was already settled."""
        if self._state is not OutputState.PENDING:
            logger.debug(f"Ignoring repeated rejection of {self!r}")
            return False
        self._settle(OutputState.FAILED, error=error)
        return True

    def _settle(
        self,
        state: OutputState,
        value: Any = None,
        error: BaseException | None = None,
    ) -> None:
        self._state = state
        self._value = value
        self._error = error

        listeners, self._listeners = self._listeners, []
        _notifications.extend((listener, self) for listener in listeners)
        _drain()

    def _subscribe(self, listener: Callable[[Output], None]) -> None:
        if self._state is OutputState.PENDING:
            self._listeners.append(listener)
        else:
            listener(self)

    def _on_parent_settled(self, parent: Output) -> None:
        if self._state is not OutputState.PENDING:
            return
        if parent.is_failed:
            # Contagion: same error object, transform never runs
            self._settle(OutputState.FAILED, error=parent._error)
            return
        if any(not p.is_resolved for p in self._parents):
            return
        self._run_transform()

    def _run_transform(self) -> None:
        values = [p._value for p in self._parents]
        try:
            result = self._transform(values) if self._transform else values[0]
        except Exception as e:
            if self.sensitive:
                detail = f"{type(e).__name__} while transforming a secret value"
            else:
                detail = f"{type(e).__name__}: {e}"
            error = TransformError(f"Transform failed: {detail}")
            error.__cause__ = e
            logger.debug(f"Transform failed for derived output: {detail}")
            self._settle(OutputState.FAILED, error=error)
            return

        if isinstance(result, Output):
            self._settle(
                OutputState.FAILED,
                error=TransformError(
                    "Transform returned an Output; combine values with Output.all() instead"
                ),
            )
            return

        self._settle(OutputState.RESOLVED, value=result)


def _drain() -> None:
    """Run queued listener notifications until none are left.

    Listeners that settle further Outputs only enqueue more notifications;
    the outermost call does all the work.
    """
    global _draining
    if _draining:
        return
    _draining = True
    try:
        while _notifications:
            listener, output = _notifications.popleft()
            listener(output)
    finally:
        _draining = False
        _notifications.clear()


# ----------------------------------------------------------------------
# Helpers for nested input structures
# ----------------------------------------------------------------------


def find_outputs(value: Any) -> list[Output]:
    """Collect every Output nested in dicts, lists, tuples and sets."""
    if isinstance(value, Output):
        return [value]
    found: list[Output] = []
    if isinstance(value, Mapping):
        for item in value.values():
            found.extend(find_outputs(item))
    elif isinstance(value, (list, tuple, set, frozenset)):
        for item in value:
            found.extend(find_outputs(item))
    return found


def unwrap(value: Any) -> Any:
    """Replace every nested Output by its concrete value.

    Raises:
        ValueError: If a nested Output is still pending
        BaseException: The error of a nested Output that failed
    """
    if isinstance(value, Output):
        return value.value
    if isinstance(value, Mapping):
        return {key: unwrap(item) for key, item in value.items()}
    if isinstance(value, list):
        return [unwrap(item) for item in value]
    if isinstance(value, tuple):
        return tuple(unwrap(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return type(value)(unwrap(item) for item in value)
    return value


def is_sensitive(value: Any) -> bool:
    """True if any nested Output is sensitive."""
    return any(output.sensitive for output in find_outputs(value))


def redact(value: Any) -> Any:
    """Render nested inputs for logs, masking sensitive values."""
    if isinstance(value, Output):
        if value.sensitive:
            return SECRET_PLACEHOLDER
        return value.value if value.is_resolved else repr(value)
    if isinstance(value, Mapping):
        return {key: redact(item) for key, item in value.items()}
    if isinstance(value, list):
        return [redact(item) for item in value]
    if isinstance(value, tuple):
        return tuple(redact(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return type(value)(redact(item) for item in value)
    return value
