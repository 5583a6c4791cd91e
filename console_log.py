"""
console_log.py

Console output for the command-line steps: logging routed through rich and
end-of-run summary tables.
"""

import logging
from typing import Mapping, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich import box

console = Console(stderr=True)


def configure_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # keep SQL echo and HTTP pool chatter out of the run log
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def summary_table(title: str, stats: Mapping[str, object]) -> Table:
    table = Table(title=f"[bold cyan]{title}[/bold cyan]", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    for key, value in stats.items():
        table.add_row(key.replace("_", " "), str(value))
    return table


def print_summary(title: str, stats: Mapping[str, object], out: Optional[Console] = None):
    (out or console).print(summary_table(title, stats))
