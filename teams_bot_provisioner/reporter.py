"""
Operator-facing status output.
"""

from typing import Optional, List, Tuple

from rich.console import Console
from rich.text import Text


class Reporter:
    """Colored step-by-step status lines on a rich console."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(highlight=False)

    def _line(self, tag: str, style: str, message: str):
        self.console.print(Text.assemble((f"[{tag}]", style), " ", message))

    def info(self, message: str):
        self._line("INFO", "cyan", message)

    def success(self, message: str):
        self._line("SUCCESS", "green", message)

    def warning(self, message: str):
        self._line("WARNING", "bold yellow", message)

    def error(self, message: str):
        self._line("ERROR", "red", message)

    def banner(self, title: str, style: str = "green"):
        rule = "=" * 40
        self.console.print()
        self.console.print(Text(rule, style=style))
        self.console.print(Text(f"  {title}", style=style))
        self.console.print(Text(rule, style=style))
        self.console.print()

    def fields(self, rows: List[Tuple[str, str]], value_style: str = ""):
        width = max(len(label) for label, _ in rows) + 1
        for label, value in rows:
            self.console.print(Text.assemble(f"{label + ':':<{width}} ", (value, value_style)))

    def credentials(self, rows: List[Tuple[str, str]]):
        """Print secrets once, inside a clearly delimited block."""
        self.banner("CREDENTIALS (SAVE THESE SECURELY!)", style="yellow")
        self.fields(rows, value_style="cyan")
        self.console.print()
        self.warning("The secret is shown only this once and cannot be retrieved later")
        self.console.print(Text("=" * 40, style="green"))
        self.console.print()
