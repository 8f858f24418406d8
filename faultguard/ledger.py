"""
Result Ledger — pass/fail accounting for one run.

INVARIANT:
    passed + failed equals the number of checks completed so far.
    Both counters only ever grow. The ledger is never reset mid-run;
    a new run gets a new ledger.

The ledger is not reentrant and not thread-safe. `record()` must be
called exactly once per check.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from .config import EXIT_CHECKS_FAILED, EXIT_OK


@dataclass(frozen=True)
class Summary:
    """
    Immutable snapshot of a ledger.

    Used for the closing report and for the process exit status.
    """
    name: str
    passed: int
    failed: int
    elapsed: float

    @property
    def total(self) -> int:
        """Total number of checks recorded."""
        return self.passed + self.failed

    @property
    def all_passed(self) -> bool:
        """True if no check failed."""
        return self.failed == 0

    @property
    def ratio(self) -> str:
        """Pass ratio as 'passed/total'."""
        return f"{self.passed}/{self.total}"

    def counts(self) -> tuple[int, int]:
        """(passed, failed), without the clock; equal across identical runs."""
        return (self.passed, self.failed)


@dataclass
class Ledger:
    """Counters for passed and failed checks plus the run clock."""
    name: str = "faultguard"
    passed: int = 0
    failed: int = 0
    started: float = field(default_factory=time.monotonic)

    def record(self, outcome: bool) -> bool:
        """Count one check outcome. Returns the outcome unchanged."""
        if outcome:
            self.passed += 1
        else:
            self.failed += 1
        return outcome

    @property
    def total(self) -> int:
        return self.passed + self.failed

    def elapsed(self) -> float:
        """Seconds since the ledger was started."""
        return time.monotonic() - self.started

    def summarize(self) -> Summary:
        """Snapshot the counters and elapsed time."""
        return Summary(
            name=self.name,
            passed=self.passed,
            failed=self.failed,
            elapsed=self.elapsed(),
        )

    @property
    def exit_status(self) -> int:
        """Zero only if no check failed."""
        return EXIT_OK if self.failed == 0 else EXIT_CHECKS_FAILED
