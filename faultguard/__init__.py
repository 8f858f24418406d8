# faultguard
# Linear check harness that survives fatal faults

"""
Core invariant: a fault raised while a check is evaluated is recorded as
one failed check, and the run continues with the next operation.

The fault handlers are installed for exactly one check at a time and are
always restored afterwards.
"""

from .controller import HarnessState, RunController, RunResult
from .domain import (
    CheckRecord,
    FatalFault,
    Fault,
    FaultKind,
    HandlerInstallError,
    HarnessError,
    InterceptorLeakError,
    MandatoryCheckFailed,
    ScriptLoadError,
)
from .evaluator import CheckEvaluator
from .interceptor import FaultInterceptor
from .ledger import Ledger, Summary
from .script import Check, Note, Phase, RunContext, Script, Statement

__version__ = "0.1.0"

__all__ = [
    "Check",
    "CheckEvaluator",
    "CheckRecord",
    "FatalFault",
    "Fault",
    "FaultInterceptor",
    "FaultKind",
    "HandlerInstallError",
    "HarnessError",
    "HarnessState",
    "InterceptorLeakError",
    "Ledger",
    "MandatoryCheckFailed",
    "Note",
    "Phase",
    "RunContext",
    "RunController",
    "RunResult",
    "ScriptLoadError",
    "Script",
    "Statement",
    "Summary",
]
