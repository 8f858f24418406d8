"""
Fault Interceptor — turns a fatal fault into an ordinary failed check.

A fault raised while a check is being evaluated must not terminate the
process. The interceptor owns the process-wide fault handlers for the
duration of exactly one check:

    arm()        install the handlers, remember what was there, active = True
    <fault>      handler records the fault, active = False, raises FatalFault
    disarm()     reinstall the remembered handlers, active = False

The FatalFault raised from the handler unwinds the checked expression
back to the evaluator's `try`. That `try` is the resume point.

Faults the interpreter cannot survive in-process (abort() from a C
extension, segmentation faults) are handled by `run_isolated()`, which
evaluates the expression in a forked child and maps a signal-terminated
child to a fault.

INVARIANT:
    Handler installation never leaks across checks. `disarm()` is called
    on the normal path and on the fault path alike.
"""

from __future__ import annotations

import json
import logging
import os
import signal
import sys
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from .config import DEFAULT_FAULT_SIGNALS
from .domain import (
    FatalFault,
    Fault,
    FaultKind,
    HandlerInstallError,
    HarnessError,
    InterceptorLeakError,
    signal_name,
)

logger = logging.getLogger(__name__)


class FaultInterceptor:
    """
    Process-wide fault registration for one check at a time.

    Not reentrant on the same instance. Separate instances nest: an inner
    interceptor armed inside an outer check saves and restores the outer
    handlers.
    """

    def __init__(self, fault_signals: tuple[int, ...] = DEFAULT_FAULT_SIGNALS):
        self.fault_signals = tuple(fault_signals)
        self.active = False
        self.last_fault: Optional[Fault] = None
        self._saved: dict[int, Any] = {}

    # =========================================================================
    # ARM / DISARM
    # =========================================================================

    @property
    def installed(self) -> bool:
        """True while our handlers are installed."""
        return bool(self._saved)

    @property
    def armed(self) -> bool:
        """True if any part of the registration is live."""
        return self.active or self.installed

    def handles(self, signum: int) -> bool:
        """True if this interceptor's handler is the one installed for `signum`."""
        return signal.getsignal(signum) == self._handle

    def arm(self) -> None:
        """
        Install the fault handlers for one checked expression.

        Raises:
            InterceptorLeakError: If the previous check was never disarmed
            HandlerInstallError: If a handler cannot be installed, e.g.
                when called outside the main thread
        """
        if self.installed:
            raise InterceptorLeakError("interceptor armed twice without disarm")

        self.last_fault = None
        for signum in self.fault_signals:
            try:
                previous = signal.signal(signum, self._handle)
            except (ValueError, OSError) as e:
                self._restore()
                raise HandlerInstallError(signum, str(e)) from e
            # None means the previous handler was not installed from Python
            self._saved[signum] = signal.SIG_DFL if previous is None else previous

        self.active = True
        logger.debug("armed for %s", ", ".join(signal_name(s) for s in self.fault_signals))

    def disarm(self) -> None:
        """Reinstall the handlers saved by arm(). No-op when not armed."""
        self.active = False
        self._restore()
        logger.debug("disarmed")

    def _restore(self) -> None:
        for signum, previous in self._saved.items():
            signal.signal(signum, previous)
        self._saved.clear()

    @contextmanager
    def protect(self) -> Iterator[FaultInterceptor]:
        """Arm for the body of a with-block and always disarm after it."""
        self.arm()
        try:
            yield self
        finally:
            self.disarm()

    # =========================================================================
    # FAULT DELIVERY
    # =========================================================================

    def _handle(self, signum: int, frame: Any) -> None:
        """Signal handler. Runs in the main thread between bytecodes."""
        fault = Fault.from_signal(signum)
        self.last_fault = fault

        if not self.active:
            # A second fault in the same region, or a fault outside any
            # check: fall back to the default disposition.
            logger.error("caught %s outside of a check, re-raising", fault.describe())
            signal.signal(signum, signal.SIG_DFL)
            signal.raise_signal(signum)
            return

        self.active = False
        raise FatalFault(fault)

    def intercept(self, exc: BaseException) -> Fault:
        """
        Record an exception that escaped a checked expression.

        Returns the Fault naming it. Leaves the interceptor inactive; the
        handlers stay installed until disarm().
        """
        fault = Fault.from_exception(exc)
        self.last_fault = fault
        self.active = False
        logger.warning("caught %s", fault.describe())
        return fault

    # =========================================================================
    # ISOLATED EVALUATION
    # =========================================================================

    def run_isolated(self, thunk: Callable[[], Any]) -> bool:
        """
        Evaluate `thunk` in a forked child process.

        Side effects of the thunk stay in the child. The child reports
        its result as JSON through a pipe.

        Returns:
            bool(thunk()) as computed by the child

        Raises:
            FatalFault: If the child was killed by a signal, raised, or
                exited without reporting
            HarnessError: If the platform cannot fork
        """
        if not hasattr(os, "fork"):
            raise HarnessError("isolated checks require os.fork")

        sys.stdout.flush()
        sys.stderr.flush()
        read_fd, write_fd = os.pipe()
        pid = os.fork()

        if pid == 0:
            os.close(read_fd)
            self._child(thunk, write_fd)

        os.close(write_fd)
        with os.fdopen(read_fd, "r") as pipe:
            data = pipe.read()
        _, status = os.waitpid(pid, 0)

        if os.WIFSIGNALED(status):
            signum = os.WTERMSIG(status)
            raise FatalFault(Fault.from_signal(signum, kind=FaultKind.CRASH))

        if not data:
            raise FatalFault(Fault(
                kind=FaultKind.CRASH,
                name="ChildExit",
                detail=f"exit status {os.waitstatus_to_exitcode(status)}",
            ))

        payload = json.loads(data)
        if "error" in payload:
            kind = FaultKind(payload["kind"])
            raise FatalFault(Fault(kind=kind, name=payload["error"], detail=payload["detail"]))
        return bool(payload["outcome"])

    def _child(self, thunk: Callable[[], Any], write_fd: int) -> None:
        """Body of the forked child. Never returns."""
        status = 0
        try:
            # Let the child die from its own faults
            for signum in self.fault_signals:
                signal.signal(signum, signal.SIG_DFL)
            try:
                payload: dict[str, Any] = {"outcome": bool(thunk())}
            except Exception as exc:
                fault = Fault.from_exception(exc)
                payload = {"error": fault.name, "kind": fault.kind.value, "detail": fault.detail}
            with os.fdopen(write_fd, "w") as pipe:
                json.dump(payload, pipe)
        except BaseException:
            status = 70
        finally:
            sys.stdout.flush()
            sys.stderr.flush()
            os._exit(status)
