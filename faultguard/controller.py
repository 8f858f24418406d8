"""
Run Controller — executes a script from start to finish.

Run stages:
    1. Start banner, fresh harness state (ledger + interceptor)
    2. Phases in order; operations in order within each phase
    3. Closing summary and exit status

Ordinary check failures never stop the run, so one failing check does
not hide the results of unrelated later checks. A failing mandatory
check raises MandatoryCheckFailed and nothing after it runs. Statements
are not protected: an exception from a statement propagates.

No rollback. A phase may rely on state or artifacts left behind by an
earlier phase.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import EXIT_CHECKS_FAILED, EXIT_OK, HarnessConfig
from .domain import InterceptorLeakError
from .evaluator import CheckEvaluator
from .interceptor import FaultInterceptor
from .ledger import Ledger, Summary
from .report import Reporter
from .script import Check, Note, Phase, RunContext, Script, Statement

logger = logging.getLogger(__name__)


# =============================================================================
# HARNESS STATE
# =============================================================================

@dataclass
class HarnessState:
    """
    Everything a run mutates.

    Built at run start, torn down at run end. Never shared between runs.
    """
    ledger: Ledger
    interceptor: FaultInterceptor
    context: RunContext

    @classmethod
    def create(cls, name: str, config: HarnessConfig) -> HarnessState:
        return cls(
            ledger=Ledger(name=name),
            interceptor=FaultInterceptor(config.fault_signals),
            context=RunContext(keep_files=config.keep_files),
        )

    def ensure_disarmed(self) -> None:
        """
        Raises:
            InterceptorLeakError: If the interceptor is still armed
        """
        if self.interceptor.armed:
            raise InterceptorLeakError("fault interceptor left armed outside of a check")


@dataclass(frozen=True)
class RunResult:
    """Outcome of a completed run."""
    summary: Summary
    kept_files: Optional[Path] = None

    @property
    def exit_status(self) -> int:
        return EXIT_OK if self.summary.all_passed else EXIT_CHECKS_FAILED


# =============================================================================
# CONTROLLER
# =============================================================================

class RunController:
    """Sequences the phases of a script through the evaluator."""

    def __init__(
        self,
        config: Optional[HarnessConfig] = None,
        reporter: Optional[Reporter] = None,
    ):
        self.config = config if config is not None else HarnessConfig()
        self.reporter = reporter if reporter is not None else Reporter(
            color=self.config.color,
            silent=self.config.silent,
        )
        self.state: Optional[HarnessState] = None

    def run(self, script: Script) -> RunResult:
        """
        Execute every phase of `script`.

        Returns:
            RunResult with the summary and the exit status

        Raises:
            MandatoryCheckFailed: If a mandatory check failed
            HarnessError: If the harness itself failed
        """
        state = HarnessState.create(script.name, self.config)
        self.state = state
        state.ensure_disarmed()

        self.reporter.banner(script.name, time.time())
        logger.debug("running %s: %d phases, %d checks",
                     script.name, len(script.phases), script.check_count)

        evaluator = CheckEvaluator(state.ledger, state.interceptor, self.reporter)
        try:
            for phase in script.phases:
                self._run_phase(phase, evaluator, state)
        finally:
            kept = state.context.cleanup()

        state.ensure_disarmed()
        summary = state.ledger.summarize()
        self.reporter.summary(summary)
        if kept is not None:
            self.reporter.kept(kept)

        return RunResult(summary=summary, kept_files=kept)

    def _run_phase(self, phase: Phase, evaluator: CheckEvaluator, state: HarnessState) -> None:
        self.reporter.note(phase.name)
        for operation in phase.operations:
            if isinstance(operation, Note):
                self.reporter.note(operation.text)
            elif isinstance(operation, Statement):
                self.reporter.statement(operation.text)
                operation.action(state.context)
            elif isinstance(operation, Check):
                evaluator.evaluate(operation, state.context)
                state.ensure_disarmed()
            else:
                raise TypeError(f"unknown operation: {operation!r}")
