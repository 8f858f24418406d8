"""
Console report stream.

One line per check, statement and note, a start banner and a closing
summary. Everything is suppressed in silent mode. Colours are plain ANSI
escapes and only emitted when colour is on.
"""

from __future__ import annotations

import sys
import time
from typing import Optional, TextIO

from .domain import CheckRecord, Fault
from .ledger import Summary


# =============================================================================
# COLOURS
# =============================================================================

RESET = "\x1b[0m"
RED = "\x1b[31m"
GREEN = "\x1b[32m"
YELLOW = "\x1b[33m"
BLUE = "\x1b[34m"


class Reporter:
    """Formats and writes the report stream."""

    def __init__(
        self,
        color: bool = False,
        silent: bool = False,
        stream: Optional[TextIO] = None,
    ):
        self.color = color
        self.silent = silent
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        # Resolved late so redirected stdout is honoured
        return self._stream if self._stream is not None else sys.stdout

    def _paint(self, code: str, text: str) -> str:
        if not self.color:
            return text
        return f"{code}{text}{RESET}"

    def _write(self, line: str) -> None:
        if not self.silent:
            print(line, file=self.stream)

    # =========================================================================
    # LINES
    # =========================================================================

    def format_check(self, record: CheckRecord) -> str:
        """Format the result line for a check."""
        if record.outcome:
            return f"      {self._paint(GREEN, 'ok')}:\t{record.text}"
        return f"  {self._paint(RED, 'FAILED')}:\t{record.text} (line {record.line})"

    def check(self, record: CheckRecord) -> None:
        self._write(self.format_check(record))

    def fault(self, fault: Fault) -> None:
        self._write(f"caught {fault.describe()}")

    def statement(self, text: str) -> None:
        self._write(f"   {self._paint(BLUE, 'state')}:\t{text}")

    def must(self, text: str) -> None:
        self._write(f"    {self._paint(BLUE, 'must')}:\t{text}")

    def note(self, text: str) -> None:
        self._write(self._paint(YELLOW, text))

    # =========================================================================
    # BANNER AND SUMMARY
    # =========================================================================

    def banner(self, name: str, timestamp: Optional[float] = None) -> None:
        """Start banner with a local timestamp."""
        stamp = time.asctime(time.localtime(timestamp))
        self._write(f"{name} unit tests\n{stamp}\nbegin:\n")

    def format_summary(self, summary: Summary) -> str:
        return (
            f"{summary.name} unit tests\n"
            f"passed  {summary.ratio}\n"
            f"time    {summary.elapsed:f}s"
        )

    def summary(self, summary: Summary) -> None:
        self._write("\n\n" + self.format_summary(summary))

    def kept(self, path: object) -> None:
        self._write(f"kept temporary files in {path}")
