"""
Tests for the Fault Interceptor.

These tests verify:
1. arm() installs our handler and disarm() restores the previous one
2. A fault signal while armed becomes a FatalFault and clears the flag
3. Exceptions escaping a check are classified into faults
4. Installation failures are harness failures
5. Isolated evaluation survives native aborts
"""

import os
import signal
import threading

import pytest

from faultguard.domain import (
    FatalFault,
    Fault,
    FaultKind,
    HandlerInstallError,
    InterceptorLeakError,
    signal_name,
)
from faultguard.interceptor import FaultInterceptor


needs_fork = pytest.mark.skipif(not hasattr(os, "fork"), reason="requires os.fork")


# =============================================================================
# ARM / DISARM
# =============================================================================

class TestArmDisarm:
    """Test handler installation and restoration."""

    def test_starts_disarmed(self):
        interceptor = FaultInterceptor()

        assert not interceptor.active
        assert not interceptor.installed
        assert not interceptor.armed
        assert interceptor.last_fault is None

    def test_arm_installs_handler(self):
        interceptor = FaultInterceptor((signal.SIGABRT,))
        interceptor.arm()
        try:
            assert interceptor.active
            assert interceptor.handles(signal.SIGABRT)
        finally:
            interceptor.disarm()

    def test_disarm_restores_previous_handler(self):
        """Handler state does not leak past disarm()."""
        before = signal.getsignal(signal.SIGABRT)
        interceptor = FaultInterceptor((signal.SIGABRT,))

        interceptor.arm()
        interceptor.disarm()

        assert not interceptor.armed
        assert not interceptor.handles(signal.SIGABRT)
        assert signal.getsignal(signal.SIGABRT) == before

    def test_disarm_when_not_armed_is_noop(self):
        interceptor = FaultInterceptor()
        interceptor.disarm()

        assert not interceptor.armed

    def test_protect_disarms_on_exception(self):
        """The with-block always disarms, even when the body raises."""
        interceptor = FaultInterceptor((signal.SIGABRT,))

        with pytest.raises(ZeroDivisionError):
            with interceptor.protect():
                assert interceptor.active
                1 / 0

        assert not interceptor.armed

    def test_arm_twice_is_a_leak(self):
        interceptor = FaultInterceptor((signal.SIGABRT,))
        interceptor.arm()
        try:
            with pytest.raises(InterceptorLeakError):
                interceptor.arm()
        finally:
            interceptor.disarm()

    def test_arm_outside_main_thread_fails(self):
        """Python only installs handlers from the main thread."""
        interceptor = FaultInterceptor((signal.SIGABRT,))
        errors = []

        def worker():
            try:
                interceptor.arm()
            except HandlerInstallError as e:
                errors.append(e)

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        assert len(errors) == 1
        assert errors[0].signum == signal.SIGABRT
        assert "SIGABRT" in str(errors[0])
        assert not interceptor.armed

    def test_nested_interceptors_restore_outer_handler(self):
        """An inner interceptor hands the signal back to the outer one."""
        outer = FaultInterceptor((signal.SIGABRT,))
        inner = FaultInterceptor((signal.SIGABRT,))

        with outer.protect():
            with inner.protect():
                assert inner.handles(signal.SIGABRT)
            assert outer.handles(signal.SIGABRT)

        assert not outer.handles(signal.SIGABRT)


# =============================================================================
# FAULT DELIVERY
# =============================================================================

class TestFaultDelivery:
    """Test conversion of signals and exceptions into faults."""

    def test_signal_while_armed_raises_fatal_fault(self):
        interceptor = FaultInterceptor((signal.SIGABRT,))

        with interceptor.protect():
            with pytest.raises(FatalFault) as info:
                signal.raise_signal(signal.SIGABRT)
            # Cleared before control came back
            assert not interceptor.active

        fault = info.value.fault
        assert fault.kind is FaultKind.SIGNAL
        assert fault.name == "SIGABRT"
        assert fault.signum == signal.SIGABRT
        assert interceptor.last_fault == fault

    def test_fatal_fault_passes_except_exception(self):
        interceptor = FaultInterceptor((signal.SIGABRT,))

        with interceptor.protect():
            with pytest.raises(FatalFault):
                try:
                    signal.raise_signal(signal.SIGABRT)
                except Exception:
                    pass

        assert interceptor.last_fault.name == "SIGABRT"

    @pytest.mark.skipif(not hasattr(signal, "SIGUSR1"), reason="requires SIGUSR1")
    def test_configured_signal_is_intercepted(self):
        interceptor = FaultInterceptor((signal.SIGABRT, signal.SIGUSR1))

        with interceptor.protect():
            with pytest.raises(FatalFault, match="SIGUSR1"):
                signal.raise_signal(signal.SIGUSR1)

    def test_arm_clears_last_fault(self):
        interceptor = FaultInterceptor((signal.SIGABRT,))
        interceptor.intercept(AssertionError("old"))

        interceptor.arm()
        interceptor.disarm()

        assert interceptor.last_fault is None

    def test_intercept_assertion(self):
        interceptor = FaultInterceptor()
        interceptor.arm()
        try:
            fault = interceptor.intercept(AssertionError("stack underflow"))
            assert not interceptor.active
        finally:
            interceptor.disarm()

        assert fault.kind is FaultKind.ASSERTION
        assert fault.describe() == "AssertionError: stack underflow"

    def test_intercept_other_exception(self):
        fault = FaultInterceptor().intercept(KeyError("missing"))

        assert fault.kind is FaultKind.EXCEPTION
        assert fault.name == "KeyError"

    def test_intercept_fatal_fault_keeps_its_fault(self):
        original = Fault.from_signal(signal.SIGABRT)
        fault = FaultInterceptor().intercept(FatalFault(original))

        assert fault is original


class TestFaultNames:
    """Test fault identifiers."""

    def test_signal_fault_description(self):
        fault = Fault.from_signal(signal.SIGABRT)

        assert fault.describe() == f"SIGABRT (signal number {int(signal.SIGABRT)})"

    def test_unknown_signal_name(self):
        assert signal_name(10_000) == "UNKNOWN SIGNAL"

    def test_bare_exception_description(self):
        fault = Fault.from_exception(AssertionError())

        assert fault.describe() == "AssertionError"


# =============================================================================
# ISOLATED EVALUATION
# =============================================================================

@needs_fork
class TestIsolated:
    """Test evaluation in a forked child."""

    def test_true_result(self):
        assert FaultInterceptor().run_isolated(lambda: 2 + 2 == 4) is True

    def test_false_result(self):
        assert FaultInterceptor().run_isolated(lambda: 0) is False

    def test_native_abort_becomes_crash(self):
        """os.abort() cannot be survived in-process; the child absorbs it."""
        with pytest.raises(FatalFault) as info:
            FaultInterceptor().run_isolated(os.abort)

        fault = info.value.fault
        assert fault.kind is FaultKind.CRASH
        assert fault.name == "SIGABRT"

    def test_child_exception_becomes_fault(self):
        def boom():
            raise ValueError("bad value")

        with pytest.raises(FatalFault) as info:
            FaultInterceptor().run_isolated(boom)

        assert info.value.fault.kind is FaultKind.EXCEPTION
        assert info.value.fault.describe() == "ValueError: bad value"

    def test_child_assertion_keeps_kind(self):
        def invariant():
            assert False, "broken"

        with pytest.raises(FatalFault) as info:
            FaultInterceptor().run_isolated(invariant)

        assert info.value.fault.kind is FaultKind.ASSERTION

    def test_side_effects_stay_in_child(self):
        seen = []
        FaultInterceptor().run_isolated(lambda: seen.append(1) or True)

        assert seen == []
