"""
Console formatting for Stackwork runs.

Renders run results and validated graphs with Rich, marking each resource
with its final state and masking sensitive exports.
"""

from typing import Any, Dict, Optional

from rich.console import Console
from rich.text import Text

from .models import FailureReason, RunResult
from .output import SECRET_PLACEHOLDER


class RunReportFormatter:
    """
    Formatter for Stackwork run results.

    Uses these symbols per resource:
    - `✓` ready
    - `✗` failed while provisioning or transforming
    - `-` skipped because a dependency failed
    """

    def __init__(self, console: Optional[Console] = None):
        """Initialize formatter with Rich console."""
        self.console = console or Console()

        self.colors = {
            'ready': 'green',
            'failed': 'red',
            'skipped': 'yellow',
            'pending': 'dim',
            'header': 'bold blue',
            'resource_name': 'bright_white',
            'attribute': 'cyan',
            'comment': 'dim'
        }

        self.symbols = {
            'ready': '✓',
            'failed': '✗',
            'skipped': '-',
            'pending': ' '
        }

    def _style_for(self, result: RunResult, resource: str) -> str:
        failure = result.failure_for(resource)
        if failure is None:
            return 'ready' if result.states.get(resource) == 'ready' else 'pending'
        if failure.reason is FailureReason.DEPENDENCY_FAILED:
            return 'skipped'
        return 'failed'

    def format_result(self, result: RunResult) -> Text:
        """
        Format a run result.

        Args:
            result: RunResult from a run

        Returns:
            Formatted Rich Text
        """
        output = Text()
        output.append(f"Stack {result.stack}: {len(result.order)} resources\n\n", style=self.colors['header'])

        for resource in result.order:
            style = self._style_for(result, resource)
            output.append(f"  {self.symbols[style]} ", style=self.colors[style])
            output.append(resource, style=self.colors['resource_name'])
            output.append(f" ({result.states.get(resource, 'unknown')})\n", style=self.colors['comment'])

            failure = result.failure_for(resource)
            if failure is None:
                continue
            if failure.reason is FailureReason.DEPENDENCY_FAILED:
                output.append(f"      caused by: {' → '.join(failure.chain)}\n", style=self.colors['comment'])
            else:
                output.append(f"      {failure.reason.value}: ", style=self.colors['failed'])
                output.append(f"{failure.detail}\n")

        if result.exports or result.unresolved_exports:
            output.append("\nExports:\n", style=self.colors['header'])
            for name, value in result.exports.items():
                shown = SECRET_PLACEHOLDER if name in result.sensitive_exports else value
                output.append(f"  {name}", style=self.colors['attribute'])
                output.append(f" = {shown}\n")
            for name in result.unresolved_exports:
                output.append(f"  {name}", style=self.colors['attribute'])
                output.append(" = (unresolved)\n", style=self.colors['failed'])

        output.append("\n")
        ready = sum(1 for state in result.states.values() if state == 'ready')
        summary = f"{ready} ready, {len(result.root_failures)} failed, "
        summary += f"{len(result.failures) - len(result.root_failures)} skipped."
        output.append(summary, style=self.colors['ready'] if result.success else self.colors['failed'])

        return output

    def format_validation(self, validation: Dict[str, Any]) -> Text:
        """
        Format the deployment order of a validated stack.

        Args:
            validation: Dict returned by StackworkCore.validate()

        Returns:
            Formatted Rich Text
        """
        output = Text()
        output.append(f"Stack {validation['stack']} deployment order:\n\n", style=self.colors['header'])

        for i, resource in enumerate(validation['order'], start=1):
            output.append(f"  {i}. ", style=self.colors['comment'])
            output.append(resource, style=self.colors['resource_name'])
            deps = validation['dependencies'].get(resource) or []
            if deps:
                output.append(f"  ← {', '.join(deps)}", style=self.colors['comment'])
            output.append("\n")

        if validation['exports']:
            output.append(f"\nExports: {', '.join(validation['exports'])}\n", style=self.colors['attribute'])

        return output

    def print_result(self, result: RunResult) -> None:
        self.console.print(self.format_result(result))

    def print_validation(self, validation: Dict[str, Any]) -> None:
        self.console.print(self.format_validation(validation))
