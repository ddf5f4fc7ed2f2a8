"""
Stackwork CLI - Dependency-ordered infrastructure provisioning in Python.
"""

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from .backends import InMemoryBackend
from .core import StackworkCore
from .formatters import RunReportFormatter
from .settings import get_settings

# Setup
app = typer.Typer(
    name="stackwork",
    help="Dependency-ordered infrastructure provisioning in Python",
    add_completion=False,
)
console = Console()


def configure_logging():
    """Configure logging based on settings."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# Configure logging on module import
configure_logging()


# Helper functions to reduce duplication across commands
def _get_main_file(file: Path | None) -> Path:
    """Resolve the program file and return its Path.

    Args:
        file: Explicit program file, or None for the configured default

    Returns:
        Path to the program file

    Raises:
        SystemExit: If the program file is not found
    """
    main_file = file or Path.cwd() / get_settings().program_file
    if not main_file.exists():
        console.print(
            f"[bold red]✗ Error:[/bold red] No {main_file.name} found"
        )
        console.print(
            "[dim]Hint: cd into your project directory or pass the program file[/dim]"
        )
        raise typer.Exit(code=1)
    return main_file


def _create_command_panel(title: str, color: str, main_file: Path) -> Panel:
    """Create a Rich Panel for command display.

    Args:
        title: Command title (e.g., "Stackwork Up")
        color: Border color (e.g., "blue", "cyan")
        main_file: Program file being run

    Returns:
        Formatted Rich Panel
    """
    settings = get_settings()
    return Panel.fit(
        f"[bold {color}]{title}[/bold {color}]\n"
        f"Program: {main_file}\n"
        f"Stack: {settings.stack_name}",
        border_style=color,
    )


def _handle_command_error(e: Exception, command_type: str) -> None:
    """Handle command errors with appropriate formatting.

    Args:
        e: Exception that occurred
        command_type: Type of command (for error message context)

    Raises:
        SystemExit: Always exits with code 1
    """
    console.print(
        f"\n[bold red]✗ {command_type.capitalize()} failed:[/bold red] {e}"
    )
    raise typer.Exit(code=1)


@app.command()
def up(
    file: Path = typer.Argument(
        None, help="Program file defining build(stack) (default: main.py)"
    ),
    concurrency: int = typer.Option(
        None, "--concurrency", "-c", min=1,
        help="Maximum concurrent provisioning calls (overrides .env)",
    ),
    check_existing: bool = typer.Option(
        None, "--check-existing/--no-check-existing",
        help="Adopt resources the backend already knows (overrides .env)",
    ),
    backend: str = typer.Option(
        None, "--backend",
        help="Use a built-in backend instead of the program's ('memory')",
    ),
):
    """Provision the stack declared by the program in dependency order."""
    main_file = _get_main_file(file)
    console.print(_create_command_panel("Stackwork Up", "blue", main_file))

    override = None
    if backend == "memory":
        override = InMemoryBackend()
    elif backend is not None:
        console.print(f"[bold red]✗ Error:[/bold red] Unknown backend '{backend}'")
        raise typer.Exit(code=1)

    try:
        core = StackworkCore(concurrency_limit=concurrency, check_existing=check_existing)
        result = asyncio.run(core.up(main_file, backend=override))
    except Exception as e:
        _handle_command_error(e, "up")

    RunReportFormatter(console).print_result(result)

    if result.success:
        console.print("\n[bold green]✓ Stack provisioned successfully![/bold green]")
    else:
        console.print("\n[bold red]✗ Stack provisioning failed[/bold red]")
        raise typer.Exit(code=1)


@app.command()
def validate(
    file: Path = typer.Argument(
        None, help="Program file defining build(stack) (default: main.py)"
    ),
):
    """Build the dependency graph and show deployment order without provisioning."""
    main_file = _get_main_file(file)
    console.print(_create_command_panel("Stackwork Validate", "cyan", main_file))

    try:
        core = StackworkCore()
        validation = asyncio.run(core.validate(main_file))
    except Exception as e:
        _handle_command_error(e, "validate")

    RunReportFormatter(console).print_validation(validation)
    console.print("\n[bold green]✓ Stack is valid[/bold green]")


@app.command()
def version():
    """Show Stackwork version."""
    from . import __version__

    console.print(f"Stackwork version: [bold]{__version__}[/bold]")


if __name__ == "__main__":
    app()
