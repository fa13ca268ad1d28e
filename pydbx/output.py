"""Output formatting for the CLI."""

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .utils import format_size


class OutputFormatter:
    """Writes CLI output either as rich text or as JSON.

    Errors and warnings go to stderr so JSON on stdout stays parseable.
    """

    def __init__(self, json_output: bool = False, quiet: bool = False):
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console(soft_wrap=True)
        self.err_console = Console(stderr=True, soft_wrap=True)

    def print(self, message: str) -> None:
        self.console.print(escape(message))

    def info(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(escape(message))

    def success(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(f"[green]{escape(message)}[/green]")

    def warning(self, message: str) -> None:
        self.err_console.print(f"[yellow]{escape(message)}[/yellow]")

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]Error: {escape(message)}[/red]")

    def progress_message(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(f"[cyan]{escape(message)}[/cyan]")

    def output_json(self, data: Any) -> None:
        # Plain print keeps rich from wrapping or highlighting the JSON
        print(json.dumps(data, indent=2, default=str))

    def format_size(self, size_bytes: int) -> str:
        return format_size(size_bytes)

    def print_summary(self, title: str, rows: list[tuple[str, str]]) -> None:
        """Print a two-column summary table."""
        if self.quiet:
            return
        table = Table(title=title, show_header=False)
        table.add_column("Key", style="bold")
        table.add_column("Value")
        for key, value in rows:
            table.add_row(key, escape(value))
        self.console.print(table)

    def print_entries(self, entries: list[Any]) -> None:
        """Print file and folder metadata as a table."""
        table = Table(show_header=True, header_style="bold")
        table.add_column("Type", width=6)
        table.add_column("Size", justify="right")
        table.add_column("Modified")
        table.add_column("Path", overflow="fold")
        for entry in entries:
            kind = "dir" if entry.is_dir else "file"
            size = "-" if entry.is_dir else format_size(entry.bytes)
            table.add_row(kind, size, entry.modified, escape(entry.path))
        self.console.print(table)
