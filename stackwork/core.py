"""
Stackwork Core - dependency-ordered provisioning of declared resources.

Up Pipeline: Load program → Declare resources (build) → Build graph → Provision → Collect exports
Validate Pipeline: Load program → Declare resources (build) → Build graph
"""

import importlib.util
import inspect
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from types import ModuleType
from typing import Any, Dict

from .backends.base import Backend
from .errors import ConfigurationError
from .models import RunResult
from .settings import get_settings
from .stack import Stack

logger = logging.getLogger(__name__)

BuildFunction = Callable[[Stack], Awaitable[None] | None]


class StackworkCore:
    """Main coordinator for the Stackwork pipeline."""

    def __init__(
        self,
        concurrency_limit: int | None = None,
        check_existing: bool | None = None,
        stack_name: str | None = None,
    ):
        """
        Initialize StackworkCore.

        Args:
            concurrency_limit: Maximum concurrent provisioning calls (overrides settings/.env)
            check_existing: Adopt existing resources via backend.read() (overrides settings/.env)
            stack_name: Name of the stack (overrides settings/.env)
        """
        # Load settings
        settings = get_settings()

        # Use provided values or fall back to settings
        self.concurrency_limit = (
            concurrency_limit if concurrency_limit is not None else settings.concurrency_limit
        )
        self.check_existing = (
            check_existing if check_existing is not None else settings.check_existing
        )
        self.stack_name = stack_name or settings.stack_name

        logger.info("StackworkCore initialized")

    async def declare(self, build: BuildFunction, stack_name: str | None = None) -> Stack:
        """Run a build function against a fresh Stack and finalize it.

        Raises:
            ConfigurationError: If the declaration is invalid
        """
        stack = Stack(stack_name or self.stack_name)
        result = build(stack)
        if inspect.isawaitable(result):
            await result

        stack.finalize()
        logger.info(
            f"Declared {len(stack.graph)} resources and {len(stack.exports)} exports"
        )
        return stack

    async def run(
        self,
        build: BuildFunction,
        backend: Backend,
        stack_name: str | None = None,
    ) -> RunResult:
        """
        Declare and provision a stack.

        Args:
            build: Function receiving the Stack and declaring resources/exports
            backend: Backend used to provision resources
            stack_name: Optional stack name override

        Returns:
            RunResult with exports on success, failure reports otherwise
        """
        stack = await self.declare(build, stack_name)

        result = await stack.run(
            backend,
            concurrency_limit=self.concurrency_limit,
            check_existing=self.check_existing,
        )

        if result.success:
            logger.info(f"Stack '{stack.name}' provisioned successfully")
        else:
            logger.error(
                f"Stack '{stack.name}' failed: {len(result.failures)} failed resources, "
                f"{len(result.unresolved_exports)} unresolved exports"
            )
        return result

    async def up(self, main_file: Path, backend: Backend | None = None) -> RunResult:
        """
        Full pipeline: load program → declare → provision.

        Args:
            main_file: Path to the program file defining build(stack)
            backend: Backend override (defaults to the program's backend)

        Returns:
            RunResult of the run
        """
        logger.info(f"Starting Stackwork pipeline for: {main_file}")

        program = self._load_program(main_file)
        if backend is None:
            backend = self._program_backend(program, main_file)

        return await self.run(program.build, backend)

    async def validate(self, main_file: Path) -> Dict[str, Any]:
        """
        Validate pipeline: load program and build the graph without provisioning.

        Args:
            main_file: Path to the program file

        Returns:
            Dict with deployment order, dependencies and export names
        """
        program = self._load_program(main_file)
        stack = await self.declare(program.build)

        return {
            "stack": stack.name,
            "order": [str(resource_id) for resource_id in stack.graph.order],
            "dependencies": {
                str(resource_id): sorted(
                    str(dep) for dep in stack.graph.dependencies(resource_id)
                )
                for resource_id in stack.graph.order
            },
            "exports": list(stack.exports),
        }

    def _load_program(self, main_file: Path) -> ModuleType:
        """
        Load the program module by executing it.

        Args:
            main_file: Path to the program file

        Returns:
            Loaded module exposing build(stack)
        """
        if not main_file.exists():
            raise FileNotFoundError(f"File not found: {main_file}")

        # Load the module dynamically
        spec = importlib.util.spec_from_file_location("stackwork_program", main_file)
        if spec is None or spec.loader is None:
            raise ImportError(f"Could not load {main_file}")

        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        if not callable(getattr(module, "build", None)):
            raise ConfigurationError(f"{main_file} does not define build(stack)")

        logger.debug(f"Loaded program: {main_file}")
        return module

    def _program_backend(self, module: ModuleType, main_file: Path) -> Backend:
        """Return the backend a program declares via create_backend() or backend."""
        factory = getattr(module, "create_backend", None)
        if callable(factory):
            backend = factory()
        else:
            backend = getattr(module, "backend", None)

        if backend is None:
            raise ConfigurationError(
                f"{main_file} defines no backend; set `backend` or `create_backend()`"
            )
        if not isinstance(backend, Backend):
            raise ConfigurationError(
                f"Program backend must be a Backend, got {type(backend).__name__}"
            )
        return backend
