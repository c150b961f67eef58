"""Console output abstraction.

Services print through :class:`ConsoleProtocol` so they never depend on
Rich directly. Commands get a :class:`RichConsole`; tests use
:class:`MockConsole` and inspect what would have been printed.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Protocol

__all__ = [
    "Style",
    "ConsoleProtocol",
    "RichConsole",
    "MockConsole",
    "OutputRecord",
]


class Style(Enum):
    """Text styles for console output."""

    DEFAULT = auto()
    SUCCESS = auto()  # check glyph
    FAILURE = auto()  # cross glyph, per-repo failure
    SKIP = auto()  # per-repo skip
    ERROR = auto()  # command-level error
    WARNING = auto()
    INFO = auto()
    DIM = auto()
    BOLD = auto()
    HEADER = auto()

    def __str__(self) -> str:
        return self.name.lower()


class ConsoleProtocol(Protocol):
    """Styled output sink shared by services and commands."""

    def print(self, message: str, style: Style = Style.DEFAULT) -> None: ...

    def success(self, message: str) -> None:
        """Per-item success, rendered with a check glyph."""
        ...

    def failure(self, message: str) -> None:
        """Per-item failure, rendered with a cross glyph."""
        ...

    def skip(self, message: str) -> None:
        """Per-item skip, rendered with a dash."""
        ...

    def error(self, message: str) -> None:
        """Command-level error line (``error: ...``)."""
        ...

    def warning(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def header(self, message: str) -> None: ...

    def newline(self) -> None: ...

    def table(self, columns: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
        """Render a simple table."""
        ...

    def progress(self, message: str) -> AbstractContextManager[None]:
        """Live indicator shown while a fan-out runs."""
        ...


class RichConsole:
    """Production console backed by Rich."""

    def __init__(self, *, quiet: bool = False, stderr: bool = False) -> None:
        # Rich is imported lazily so services stay importable without it
        from rich.console import Console

        self._console = Console(highlight=False, stderr=stderr)
        self._quiet = quiet
        self._style_map = {
            Style.DEFAULT: "",
            Style.SUCCESS: "green",
            Style.FAILURE: "red",
            Style.SKIP: "yellow",
            Style.ERROR: "red bold",
            Style.WARNING: "yellow",
            Style.INFO: "cyan",
            Style.DIM: "dim",
            Style.BOLD: "bold",
            Style.HEADER: "blue bold",
        }

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        if self._quiet and style in (Style.DEFAULT, Style.DIM, Style.INFO, Style.SUCCESS, Style.SKIP):
            return
        rich_style = self._style_map.get(style, "")
        if rich_style:
            self._console.print(message, style=rich_style, markup=False)
        else:
            self._console.print(message, markup=False)

    def _tagged(self, tag: str, message: str) -> None:
        from rich.text import Text

        text = Text()
        text.append_text(Text.from_markup(tag))
        text.append(" ")
        text.append(message)
        self._console.print(text)

    def success(self, message: str) -> None:
        if not self._quiet:
            self._tagged("[green]✓[/green]", message)

    def failure(self, message: str) -> None:
        self._tagged("[red]✗[/red]", message)

    def skip(self, message: str) -> None:
        if not self._quiet:
            self._tagged("[yellow]-[/yellow]", message)

    def error(self, message: str) -> None:
        self._tagged("[red bold]error:[/red bold]", message)

    def warning(self, message: str) -> None:
        self._tagged("[yellow]warning:[/yellow]", message)

    def info(self, message: str) -> None:
        if not self._quiet:
            self._tagged("[cyan]info:[/cyan]", message)

    def header(self, message: str) -> None:
        if not self._quiet:
            self._console.print()
            self._console.print(message, style="blue bold", markup=False)

    def newline(self) -> None:
        if not self._quiet:
            self._console.print()

    def table(self, columns: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
        from rich.table import Table

        table = Table(show_edge=False, header_style="bold")
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*row)
        self._console.print(table)

    @contextmanager
    def progress(self, message: str) -> Iterator[None]:
        if self._quiet or not self._console.is_terminal:
            yield
            return
        with self._console.status(message):
            yield


@dataclass
class OutputRecord:
    """A single output record for MockConsole."""

    message: str
    style: Style


def _empty_outputs() -> list[OutputRecord]:
    return []


@dataclass
class MockConsole:
    """Console that captures output for assertions in tests."""

    outputs: list[OutputRecord] = field(default_factory=_empty_outputs)

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self.outputs.append(OutputRecord(message, style))

    def success(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"✓ {message}", Style.SUCCESS))

    def failure(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"✗ {message}", Style.FAILURE))

    def skip(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"- {message}", Style.SKIP))

    def error(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"error: {message}", Style.ERROR))

    def warning(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"warning: {message}", Style.WARNING))

    def info(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"info: {message}", Style.INFO))

    def header(self, message: str) -> None:
        self.outputs.append(OutputRecord(message, Style.HEADER))

    def newline(self) -> None:
        self.outputs.append(OutputRecord("", Style.DEFAULT))

    def table(self, columns: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
        self.outputs.append(OutputRecord(" | ".join(columns), Style.BOLD))
        for row in rows:
            self.outputs.append(OutputRecord(" | ".join(row), Style.DEFAULT))

    @contextmanager
    def progress(self, message: str) -> Iterator[None]:
        yield

    # Test helper methods

    def clear(self) -> None:
        self.outputs.clear()

    @property
    def messages(self) -> list[str]:
        return [o.message for o in self.outputs]

    @property
    def text(self) -> str:
        return "\n".join(self.messages)

    def has_error(self) -> bool:
        return any(o.style in (Style.ERROR, Style.FAILURE) for o in self.outputs)

    def has_warning(self) -> bool:
        return any(o.style == Style.WARNING for o in self.outputs)

    def has_success(self) -> bool:
        return any(o.style == Style.SUCCESS for o in self.outputs)

    def find(self, substring: str) -> list[OutputRecord]:
        return [o for o in self.outputs if substring in o.message]

    def count(self, style: Style) -> int:
        return sum(1 for o in self.outputs if o.style == style)
