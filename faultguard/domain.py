"""
Core Domain Objects for the faultguard harness.

Domain Objects:
    Fault        — An intercepted fatal fault (signal, assertion, crash)
    CheckRecord  — The outcome of one evaluated check, used for reporting

Errors:
    FatalFault            — Raised by the signal handler to unwind a check
    HarnessError          — Base for failures fatal to the whole run
    HandlerInstallError   — Fault handler could not be installed
    InterceptorLeakError  — Interceptor left armed between checks
    MandatoryCheckFailed  — A mandatory check failed, run must stop
    ScriptLoadError       — A script reference could not be resolved
"""

from __future__ import annotations

import signal
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .ledger import Summary


# =============================================================================
# FAULTS
# =============================================================================

class FaultKind(Enum):
    """Where an intercepted fault came from."""
    SIGNAL = "signal"           # Fault signal delivered in-process
    ASSERTION = "assertion"     # AssertionError from an internal invariant
    EXCEPTION = "exception"     # Any other exception escaping the check
    CRASH = "crash"             # Isolated child terminated by a signal


def signal_name(signum: int) -> str:
    """Name of a signal number, e.g. 6 -> 'SIGABRT'."""
    try:
        return signal.Signals(signum).name
    except ValueError:
        return "UNKNOWN SIGNAL"


@dataclass(frozen=True)
class Fault:
    """
    An intercepted fault.

    The fault identifier reported to the user is `describe()`. Signal
    faults carry the signal number; exception faults carry the message.
    """
    kind: FaultKind
    name: str
    signum: Optional[int] = None
    detail: str = ""

    @classmethod
    def from_signal(cls, signum: int, kind: FaultKind = FaultKind.SIGNAL) -> Fault:
        """Create a Fault for a delivered signal."""
        return cls(kind=kind, name=signal_name(signum), signum=signum)

    @classmethod
    def from_exception(cls, exc: BaseException) -> Fault:
        """Create a Fault for an exception that escaped a check."""
        if isinstance(exc, FatalFault):
            return exc.fault
        kind = FaultKind.ASSERTION if isinstance(exc, AssertionError) else FaultKind.EXCEPTION
        return cls(kind=kind, name=type(exc).__name__, detail=str(exc))

    def describe(self) -> str:
        """Human-readable fault identifier."""
        if self.signum is not None:
            return f"{self.name} (signal number {self.signum})"
        if self.detail:
            return f"{self.name}: {self.detail}"
        return self.name


class FatalFault(BaseException):
    """
    Raised from inside the fault signal handler.

    Unwinds the checked expression back to the evaluator, which is where
    the run resumes. Derives from BaseException, like KeyboardInterrupt,
    so an `except Exception` in the code under test does not stop it.
    """

    def __init__(self, fault: Fault):
        self.fault = fault
        super().__init__(f"caught {fault.describe()}")


# =============================================================================
# CHECK RECORD
# =============================================================================

@dataclass(frozen=True)
class CheckRecord:
    """
    Outcome of a single check.

    Ephemeral: produced and consumed within one evaluator call.
    """
    line: int
    text: str
    outcome: bool
    fault: Optional[Fault] = None
    mandatory: bool = False

    @property
    def faulted(self) -> bool:
        return self.fault is not None


# =============================================================================
# HARNESS ERRORS
# =============================================================================

class HarnessError(Exception):
    """Raised when the harness itself fails and the run cannot continue."""
    pass


class HandlerInstallError(HarnessError):
    """Raised when a fault handler cannot be installed."""

    def __init__(self, signum: int, reason: str):
        self.signum = signum
        self.reason = reason
        super().__init__(
            f"signal handler installation failed for {signal_name(signum)}: {reason}"
        )


class InterceptorLeakError(HarnessError):
    """Raised when the interceptor is still armed outside of a check."""
    pass


class MandatoryCheckFailed(HarnessError):
    """
    Raised when a mandatory check fails.

    Carries the failing record and the summary of every check completed
    so far, so partial results can be reported before exiting.
    """

    def __init__(self, record: CheckRecord, summary: Optional[Summary] = None):
        self.record = record
        self.summary = summary
        super().__init__(f"mandatory check failed: {record.text} (line {record.line})")


class ScriptLoadError(HarnessError):
    """Raised when a script reference cannot be resolved to a Script."""
    pass
