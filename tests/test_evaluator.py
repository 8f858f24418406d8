"""
Tests for the Check Evaluator.

These tests verify:
1. Normal results become pass/fail records and report lines
2. Faults during evaluation become failed checks, with the fault named,
   even when the checked code catches and drops the fault
3. The interceptor is disarmed after every check, whatever the outcome
4. Mandatory checks stop the caller on failure only
5. Harness failures are not mistaken for faults
"""

import io
import os
import signal

import pytest

from faultguard.domain import FaultKind, MandatoryCheckFailed, ScriptLoadError
from faultguard.evaluator import CheckEvaluator
from faultguard.interceptor import FaultInterceptor
from faultguard.ledger import Ledger
from faultguard.report import Reporter
from faultguard.script import Check, RunContext


def make_evaluator(color=False, silent=False):
    stream = io.StringIO()
    evaluator = CheckEvaluator(
        Ledger("unit"),
        FaultInterceptor((signal.SIGABRT,)),
        Reporter(color=color, silent=silent, stream=stream),
    )
    return evaluator, stream


def abort_signal(_):
    signal.raise_signal(signal.SIGABRT)
    return True


def broken_invariant(_):
    assert 1 == 2, "invariant violated"
    return True


def swallowed_abort(_):
    try:
        signal.raise_signal(signal.SIGABRT)
    except Exception:
        pass
    return True


def swallowed_everything(_):
    try:
        signal.raise_signal(signal.SIGABRT)
    except BaseException:
        pass
    return True


class LateFaultInterceptor(FaultInterceptor):
    """Delivers one fault signal just as the check is being disarmed."""

    def __init__(self, fault_signals):
        super().__init__(fault_signals)
        self.pending = True

    def disarm(self):
        if self.pending and self.active:
            self.pending = False
            signal.raise_signal(signal.SIGABRT)
        super().disarm()


# =============================================================================
# NORMAL RESULTS
# =============================================================================

class TestNormalResults:
    """Test checks that complete without faulting."""

    def test_true_expression_passes(self):
        evaluator, stream = make_evaluator()

        assert evaluator.test(lambda _: 1 == 1, "1 == 1") is True
        assert evaluator.ledger.passed == 1
        assert "ok:\t1 == 1" in stream.getvalue()

    def test_false_expression_fails(self):
        evaluator, stream = make_evaluator()
        check = Check(expr=lambda _: 1 == 2, text="1 == 2", line=42)

        assert evaluator.evaluate(check) is False
        assert evaluator.ledger.failed == 1
        assert "FAILED:\t1 == 2 (line 42)" in stream.getvalue()

    @pytest.mark.parametrize("value,expected", [(0, False), (7, True), ([], False), ("x", True), (None, False)])
    def test_result_is_coerced_to_bool(self, value, expected):
        evaluator, _ = make_evaluator()

        assert evaluator.test(lambda _: value, "value") is expected

    def test_context_is_passed_to_expression(self):
        evaluator, _ = make_evaluator()
        context = RunContext()
        context.value = 9

        assert evaluator.test(lambda ctx: ctx.value == 9, "ctx.value == 9", context)

    def test_silent_reporter_writes_nothing(self):
        evaluator, stream = make_evaluator(silent=True)
        evaluator.test(lambda _: True, "True")
        evaluator.test(lambda _: False, "False")

        assert stream.getvalue() == ""
        assert evaluator.ledger.total == 2

    def test_colored_output(self):
        evaluator, stream = make_evaluator(color=True)
        evaluator.test(lambda _: True, "True")

        assert "\x1b[32mok\x1b[0m" in stream.getvalue()


# =============================================================================
# FAULTS
# =============================================================================

class TestFaults:
    """Test that faults are recorded and survived."""

    def test_signal_fault_is_a_failed_check(self):
        evaluator, stream = make_evaluator()

        assert evaluator.test(abort_signal, "abort") is False
        assert evaluator.ledger.failed == 1
        assert f"caught SIGABRT (signal number {int(signal.SIGABRT)})" in stream.getvalue()

    def test_assertion_fault_is_a_failed_check(self):
        evaluator, stream = make_evaluator()

        assert evaluator.test(broken_invariant, "broken") is False
        assert evaluator.interceptor.last_fault.kind is FaultKind.ASSERTION
        assert "caught AssertionError: invariant violated" in stream.getvalue()

    def test_other_exception_is_a_failed_check(self):
        evaluator, stream = make_evaluator()

        assert evaluator.test(lambda _: 1 // 0, "1 // 0") is False
        assert "caught ZeroDivisionError" in stream.getvalue()

    def test_false_result_reports_no_fault(self):
        """A wrong value and a crash are reported differently."""
        evaluator, stream = make_evaluator()
        evaluator.test(lambda _: False, "False")

        assert "caught" not in stream.getvalue()

    def test_run_continues_after_fault(self):
        evaluator, _ = make_evaluator()
        evaluator.test(abort_signal, "abort")
        evaluator.test(broken_invariant, "broken")

        assert evaluator.test(lambda _: 2 + 2 == 4, "2 + 2 == 4") is True
        assert evaluator.ledger.summarize().counts() == (1, 2)

    def test_fault_swallowed_by_except_exception(self):
        """The fault unwinds past `except Exception` in the checked code."""
        evaluator, stream = make_evaluator()

        assert evaluator.test(swallowed_abort, "swallowed") is False
        assert evaluator.ledger.summarize().counts() == (0, 1)
        assert "caught SIGABRT" in stream.getvalue()

    def test_fault_swallowed_by_except_base_exception(self):
        """A fault caught and dropped by the checked code still fails the check."""
        evaluator, stream = make_evaluator()

        assert evaluator.test(swallowed_everything, "swallowed") is False
        assert evaluator.ledger.failed == 1
        assert evaluator.interceptor.last_fault.kind is FaultKind.SIGNAL
        assert "caught SIGABRT" in stream.getvalue()
        assert not evaluator.interceptor.armed

    def test_fault_during_disarm_is_recorded(self):
        before = signal.getsignal(signal.SIGABRT)
        evaluator = CheckEvaluator(Ledger("unit"), LateFaultInterceptor((signal.SIGABRT,)))

        assert evaluator.test(lambda _: True, "True") is False
        assert evaluator.ledger.summarize().counts() == (0, 1)
        assert not evaluator.interceptor.armed
        assert signal.getsignal(signal.SIGABRT) == before

        assert evaluator.test(lambda _: True, "True") is True

    @pytest.mark.parametrize("expr", [lambda _: True, lambda _: False, abort_signal, broken_invariant])
    def test_interceptor_disarmed_after_every_check(self, expr):
        before = signal.getsignal(signal.SIGABRT)
        evaluator, _ = make_evaluator()
        evaluator.test(expr, "expr")

        assert not evaluator.interceptor.armed
        assert signal.getsignal(signal.SIGABRT) == before

    @pytest.mark.skipif(not hasattr(os, "fork"), reason="requires os.fork")
    def test_isolated_native_abort(self):
        evaluator, stream = make_evaluator()
        check = Check(expr=lambda _: os.abort(), text="os.abort()", isolated=True)

        assert evaluator.evaluate(check) is False
        assert evaluator.interceptor.last_fault.kind is FaultKind.CRASH
        assert "caught SIGABRT" in stream.getvalue()

    @pytest.mark.skipif(not hasattr(os, "fork"), reason="requires os.fork")
    def test_isolated_pass(self):
        evaluator, _ = make_evaluator()
        check = Check(expr=lambda _: 3 > 2, text="3 > 2", isolated=True)

        assert evaluator.evaluate(check) is True


# =============================================================================
# MANDATORY CHECKS AND HARNESS FAILURES
# =============================================================================

class TestMandatory:
    """Test mandatory checks."""

    def test_passing_mandatory_is_an_ordinary_check(self):
        evaluator, stream = make_evaluator()

        assert evaluator.must(lambda _: True, "setup") is True
        assert evaluator.ledger.summarize().counts() == (1, 0)
        assert "must:\tsetup" in stream.getvalue()

    def test_failing_mandatory_raises_with_partial_summary(self):
        evaluator, _ = make_evaluator()
        evaluator.test(lambda _: True, "first")

        with pytest.raises(MandatoryCheckFailed) as info:
            evaluator.must(lambda _: None, "setup")

        assert info.value.record.text == "setup"
        assert info.value.record.mandatory
        assert info.value.summary.counts() == (1, 1)
        assert not evaluator.interceptor.armed

    def test_faulting_mandatory_raises(self):
        evaluator, _ = make_evaluator()

        with pytest.raises(MandatoryCheckFailed) as info:
            evaluator.must(abort_signal, "abort")

        assert info.value.record.faulted


class TestHarnessFailures:
    """Test that harness errors propagate instead of being recorded."""

    def test_harness_error_propagates(self):
        evaluator, _ = make_evaluator()

        def fail(_):
            raise ScriptLoadError("nested harness failure")

        with pytest.raises(ScriptLoadError):
            evaluator.test(fail, "fail")

        assert evaluator.ledger.total == 0
        assert not evaluator.interceptor.armed
