"""
Harness configuration and process exit codes.

Settings come from the command line; environment variables only change
the defaults:

    FAULTGUARD_COLOR       — "1" turns colorized output on
    FAULTGUARD_SILENT      — "1" suppresses the report stream
    FAULTGUARD_KEEP_FILES  — "1" keeps temporary run artifacts
    FAULTGUARD_SIGNALS     — comma separated fault signals, e.g. "SIGABRT,SIGFPE"
"""

from __future__ import annotations

import os
import signal
from dataclasses import dataclass
from typing import Mapping, Optional


# =============================================================================
# EXIT CODES
# =============================================================================

EXIT_OK = 0              # every check passed
EXIT_CHECKS_FAILED = 1   # at least one check failed
EXIT_USAGE = 2           # invalid command line, help, or unloadable script
EXIT_ABORTED = 3         # mandatory check failed or harness failure


# =============================================================================
# FAULT SIGNALS
# =============================================================================

DEFAULT_FAULT_SIGNALS: tuple[int, ...] = (signal.SIGABRT,)

DEFAULT_SCRIPT = "faultguard.suites.selftest:SCRIPT"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def parse_signal(name: str) -> int:
    """
    Resolve a signal name or number to a signal number.

    Accepts "SIGABRT", "ABRT", "abrt" or "6".

    Raises:
        ValueError: If the name is not a signal on this platform
    """
    text = name.strip()
    if text.isdigit():
        return int(signal.Signals(int(text)))
    text = text.upper()
    if not text.startswith("SIG"):
        text = "SIG" + text
    try:
        return int(signal.Signals[text])
    except KeyError:
        raise ValueError(f"unknown signal: {name}")


def _env_flag(env: Mapping[str, str], key: str) -> bool:
    return env.get(key, "").strip().lower() in _TRUE_VALUES


@dataclass
class HarnessConfig:
    """Everything that changes how a run behaves or reports."""
    color: bool = False
    silent: bool = False
    keep_files: bool = False
    verbose: bool = False
    fault_signals: tuple[int, ...] = DEFAULT_FAULT_SIGNALS
    script: str = DEFAULT_SCRIPT

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> HarnessConfig:
        """Defaults, overridden by FAULTGUARD_* environment variables."""
        if env is None:
            env = os.environ

        signals = DEFAULT_FAULT_SIGNALS
        raw_signals = env.get("FAULTGUARD_SIGNALS", "").strip()
        if raw_signals:
            signals = tuple(
                parse_signal(part) for part in raw_signals.split(",") if part.strip()
            )

        return cls(
            color=_env_flag(env, "FAULTGUARD_COLOR"),
            silent=_env_flag(env, "FAULTGUARD_SILENT"),
            keep_files=_env_flag(env, "FAULTGUARD_KEEP_FILES"),
            fault_signals=signals,
        )

    def with_signals(self, names: list[str]) -> HarnessConfig:
        """Copy of this config with extra fault signals appended."""
        signals = list(self.fault_signals)
        for name in names:
            signum = parse_signal(name)
            if signum not in signals:
                signals.append(signum)
        return HarnessConfig(
            color=self.color,
            silent=self.silent,
            keep_files=self.keep_files,
            verbose=self.verbose,
            fault_signals=tuple(signals),
            script=self.script,
        )
