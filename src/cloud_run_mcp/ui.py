"""Terminal UI utilities using Rich.

Provides consistent output across all CLI commands. Everything goes to
stderr except JSON results, so stdout stays machine-readable.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.text import Text

from cloud_run_mcp.types import OutputMode

# Global console instance
console = Console(stderr=True)
stdout_console = Console()


class CloudRunUI:
    """UI helper for CLI commands.

    Provides consistent styling and handles JSON vs normal output modes.
    """

    def __init__(self, output_mode: OutputMode) -> None:
        self.output_mode = output_mode
        self._is_human = output_mode != OutputMode.JSON

    @property
    def is_human(self) -> bool:
        """Whether output is for human consumption (not JSON)."""
        return self._is_human

    def header(self, title: str) -> None:
        """Print a section header."""
        if self.is_human:
            console.print()
            console.print(Text("☁️  Cloud Run", style="bold blue") + Text(f" • {title}", style="bold"))

    def step(self, message: str) -> None:
        """Print a step/progress message."""
        if self.is_human:
            console.print(f"  {message}")

    def info(self, message: str) -> None:
        """Print an info message."""
        if self.is_human:
            console.print(f"   ℹ️  {message}")

    def success(self, message: str) -> None:
        """Print a success message."""
        if self.is_human:
            console.print(f"   [green]{message}[/green]")

    def error(self, message: str) -> None:
        """Print an error message."""
        if self.is_human:
            console.print(f"   ❌ [red]{message}[/red]")

    def print_json(self, data: Any) -> None:
        """Print JSON output to stdout."""
        import json

        stdout_console.print_json(json.dumps(data, default=str))


@contextmanager
def spinner(message: str, output_mode: OutputMode):
    """Context manager for a spinner that respects output mode."""
    if output_mode == OutputMode.JSON:
        # No spinner in JSON mode
        yield
        return

    with Progress(
        SpinnerColumn(style="green"),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(description=message)
        yield
