"""
Self-test suite — the harness exercising its own public interface.

This is the default script of the `faultguard` command. It drives a
second, silent evaluator over expressions with known outcomes, including
ones that assert, signal and crash, and checks that the outer run
survives all of them.

Phases:
    setup                 inner ledger, interceptor and evaluator
    built-in behaviour    true, false and faulting expressions
    persistence           write the inner counts to a run artifact
    reload                read the artifact back in a later phase
    internal state        interceptor flag and handler restoration
"""

from __future__ import annotations

import json
import os
import signal

from ..config import EXIT_CHECKS_FAILED, HarnessConfig
from ..controller import RunController
from ..domain import FaultKind, MandatoryCheckFailed
from ..evaluator import CheckEvaluator
from ..interceptor import FaultInterceptor
from ..ledger import Ledger
from ..script import Check, RunContext, Script


# =============================================================================
# FAULTING EXPRESSIONS
# =============================================================================

def _assertion_fault(_: RunContext) -> bool:
    assert 2 + 2 == 5, "arithmetic invariant violated"
    return True


def _abort_signal(_: RunContext) -> bool:
    signal.raise_signal(signal.SIGABRT)
    return True


def _missing_key(_: RunContext) -> bool:
    return {}["missing"]


def _native_abort(_: RunContext) -> bool:
    os.abort()


def _raises(exc_type: type, fn) -> bool:
    try:
        fn()
    except exc_type:
        return True
    return False


def _sample_script() -> Script:
    sample = Script("sample")
    phase = sample.phase("sample")
    phase.check(lambda _: 1 == 1, "1 == 1")
    phase.check(lambda _: 1 == 2, "1 == 2")
    phase.check(_assertion_fault, "assert 2 + 2 == 5")
    return sample


def _rerun_counts() -> tuple[tuple[int, int], tuple[int, int]]:
    config = HarnessConfig(silent=True)
    first = RunController(config).run(_sample_script()).summary.counts()
    second = RunController(config).run(_sample_script()).summary.counts()
    return first, second


def _write_counts(ctx: RunContext) -> None:
    summary = ctx.ledger.summarize()
    ctx.record_path.write_text(json.dumps({"passed": summary.passed, "failed": summary.failed}))


# =============================================================================
# SCRIPT
# =============================================================================

def build() -> Script:
    """Build the self-test script."""
    script = Script("faultguard")

    setup = script.phase("setup")
    setup.state(lambda ctx: setattr(ctx, "ledger", Ledger("inner")), "ledger = Ledger('inner')")
    setup.state(
        lambda ctx: setattr(ctx, "interceptor", FaultInterceptor((signal.SIGABRT,))),
        "interceptor = FaultInterceptor((SIGABRT,))",
    )
    setup.state(
        lambda ctx: setattr(ctx, "evaluator", CheckEvaluator(ctx.ledger, ctx.interceptor)),
        "evaluator = CheckEvaluator(ledger, interceptor)",
    )
    setup.must(lambda ctx: ctx.evaluator is not None)
    setup.check(lambda ctx: ctx.ledger.total == 0)
    setup.check(lambda ctx: not ctx.interceptor.armed)
    setup.state(
        lambda ctx: setattr(ctx, "record_path", ctx.artifact("inner-ledger.json")),
        "record_path = artifact('inner-ledger.json')",
    )
    setup.must(lambda ctx: ctx.record_path.parent.is_dir())

    builtin = script.phase("built-in behaviour")
    builtin.check(lambda ctx: ctx.evaluator.test(lambda _: 1 == 1, "1 == 1"),
                  "evaluator.test(1 == 1)")
    builtin.check(lambda ctx: not ctx.evaluator.test(lambda _: 1 == 2, "1 == 2"),
                  "not evaluator.test(1 == 2)")
    builtin.check(lambda ctx: not ctx.evaluator.test(_assertion_fault),
                  "not evaluator.test(assert 2 + 2 == 5)")
    builtin.check(lambda ctx: ctx.interceptor.last_fault.kind is FaultKind.ASSERTION)
    builtin.check(lambda ctx: not ctx.evaluator.test(_abort_signal),
                  "not evaluator.test(raise_signal(SIGABRT))")
    builtin.check(lambda ctx: ctx.interceptor.last_fault.name == "SIGABRT")
    builtin.check(lambda ctx: not ctx.interceptor.active)
    builtin.check(lambda ctx: not ctx.evaluator.test(_missing_key),
                  "not evaluator.test({}['missing'])")
    builtin.check(lambda ctx: ctx.interceptor.last_fault.name == "KeyError")
    builtin.check(
        lambda ctx: _raises(MandatoryCheckFailed, lambda: ctx.evaluator.must(lambda _: 0, "0")),
        "evaluator.must(0) raises MandatoryCheckFailed",
    )
    builtin.check(
        lambda ctx: not hasattr(os, "fork") or not ctx.evaluator.evaluate(
            Check(expr=_native_abort, text="os.abort()", isolated=True)),
        "not evaluator.evaluate(isolated os.abort())",
    )
    builtin.check(
        lambda ctx: not hasattr(os, "fork") or ctx.interceptor.last_fault.kind is FaultKind.CRASH,
        "isolated os.abort() recorded as a crash",
    )
    builtin.check(lambda ctx: ctx.ledger.passed == 1)
    builtin.check(lambda ctx: ctx.ledger.total == ctx.ledger.passed + ctx.ledger.failed)

    persist = script.phase("persistence")
    persist.state(_write_counts, "write inner counts to record_path")
    persist.check(lambda ctx: ctx.record_path.exists())

    reload = script.phase("reload")
    reload.state(
        lambda ctx: setattr(ctx, "reloaded", json.loads(ctx.record_path.read_text())),
        "reloaded = json.loads(record_path.read_text())",
    )
    reload.check(lambda ctx: ctx.reloaded["passed"] == ctx.ledger.passed)
    reload.check(lambda ctx: ctx.reloaded["failed"] == ctx.ledger.failed)

    internal = script.phase("internal state")
    internal.check(lambda ctx: not ctx.interceptor.active)
    internal.check(lambda ctx: not ctx.interceptor.installed)
    internal.check(lambda ctx: not ctx.interceptor.handles(signal.SIGABRT))
    internal.check(lambda ctx: ctx.ledger.exit_status == EXIT_CHECKS_FAILED)
    internal.check(lambda ctx: _rerun_counts() == ((1, 2), (1, 2)),
                   "identical reruns give identical counts")

    return script


SCRIPT = build()
