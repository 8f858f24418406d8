"""
Check Evaluator — one check, one ledger update, one report line.

    arm()
    try:
        try:
            outcome = bool(expr(ctx))      normal path
        finally:
            disarm()                       both paths
    except FatalFault, Exception:
        outcome = False, fault reported    fault path
    ledger.record(outcome)

A fault that lands while disarm() runs is still caught by the outer
`try`. A FatalFault swallowed by the expression itself still leaves
`interceptor.last_fault` set, and the check is recorded as a failure.

Harness failures (HarnessError) raised during evaluation are not faults
of the library under test; they propagate.
"""

from __future__ import annotations

import logging
from typing import Optional

from .domain import CheckRecord, FatalFault, Fault, HarnessError, MandatoryCheckFailed
from .interceptor import FaultInterceptor
from .ledger import Ledger
from .report import Reporter
from .script import Check, RunContext, Thunk, describe, line_of

logger = logging.getLogger(__name__)


class CheckEvaluator:
    """Evaluates checks against one ledger and one interceptor."""

    def __init__(
        self,
        ledger: Ledger,
        interceptor: FaultInterceptor,
        reporter: Optional[Reporter] = None,
    ):
        self.ledger = ledger
        self.interceptor = interceptor
        self.reporter = reporter if reporter is not None else Reporter(silent=True)

    def evaluate(self, check: Check, context: Optional[RunContext] = None) -> bool:
        """
        Evaluate one check under fault protection.

        Returns:
            The outcome: True if the expression was truthy and nothing
            was intercepted

        Raises:
            MandatoryCheckFailed: If the check is mandatory and failed
            HarnessError: If the interceptor cannot be armed
        """
        if context is None:
            context = RunContext()

        if check.mandatory:
            self.reporter.must(check.text)

        fault: Optional[Fault] = None
        self.interceptor.arm()
        try:
            try:
                if check.isolated:
                    outcome = self.interceptor.run_isolated(lambda: check.expr(context))
                else:
                    outcome = bool(check.expr(context))
            finally:
                self.interceptor.disarm()
        except HarnessError:
            raise
        except (FatalFault, Exception) as exc:
            # A fault landing inside disarm() can leave handlers installed
            self.interceptor.disarm()
            fault = self.interceptor.intercept(exc)
            outcome = False

        if fault is None and self.interceptor.last_fault is not None:
            # The expression caught the FatalFault itself and carried on
            fault = self.interceptor.last_fault
            outcome = False
            logger.warning("caught %s, swallowed by the checked expression", fault.describe())

        record = CheckRecord(
            line=check.line,
            text=check.text,
            outcome=outcome,
            fault=fault,
            mandatory=check.mandatory,
        )
        self.ledger.record(outcome)

        if fault is not None:
            self.reporter.fault(fault)
        self.reporter.check(record)

        if not outcome:
            logger.info("check failed at line %d: %s", record.line, record.text)
            if check.mandatory:
                raise MandatoryCheckFailed(record, self.ledger.summarize())
        return outcome

    def test(self, expr: Thunk, text: Optional[str] = None, context: Optional[RunContext] = None) -> bool:
        """Evaluate an ad-hoc ordinary check."""
        return self.evaluate(
            Check(expr=expr, text=text or describe(expr), line=line_of(expr)),
            context,
        )

    def must(self, expr: Thunk, text: Optional[str] = None, context: Optional[RunContext] = None) -> bool:
        """Evaluate an ad-hoc mandatory check."""
        return self.evaluate(
            Check(expr=expr, text=text or describe(expr), line=line_of(expr), mandatory=True),
            context,
        )
