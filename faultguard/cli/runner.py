"""
Script loading and execution for the faultguard CLI.

A script is named by "module:attribute". The attribute is either a
Script or a zero-argument callable returning one.
"""

from __future__ import annotations

import importlib
import logging
import sys
from typing import Optional

from ..config import EXIT_ABORTED, EXIT_USAGE, HarnessConfig
from ..controller import RunController, RunResult
from ..domain import HarnessError, MandatoryCheckFailed, ScriptLoadError
from ..report import Reporter
from ..script import Script

logger = logging.getLogger(__name__)


def load_script(reference: str) -> Script:
    """
    Resolve "module:attribute" to a Script.

    Raises:
        ScriptLoadError: If the module, the attribute or the Script
            cannot be obtained
    """
    module_name, sep, attribute = reference.partition(":")
    if not sep or not module_name or not attribute:
        raise ScriptLoadError(f"expected module:attribute, got {reference!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ScriptLoadError(f"cannot import {module_name}: {e}") from e

    try:
        target = getattr(module, attribute)
    except AttributeError as e:
        raise ScriptLoadError(f"{module_name} has no attribute {attribute!r}") from e

    if callable(target) and not isinstance(target, Script):
        target = target()

    if not isinstance(target, Script):
        raise ScriptLoadError(f"{reference} is not a Script (got {type(target).__name__})")
    return target


# =============================================================================
# RUN EXECUTION
# =============================================================================

def execute(config: HarnessConfig, script: Optional[Script] = None) -> int:
    """
    Run a script and return the process exit status.

    Stages:
        1. Load the script named by the config (unless given)
        2. Run it through the controller
        3. Map the outcome, or a harness failure, to an exit status
    """
    if script is None:
        try:
            script = load_script(config.script)
        except ScriptLoadError as e:
            print(f"error: {e}", file=sys.stderr)
            return EXIT_USAGE

    reporter = Reporter(color=config.color, silent=config.silent)
    controller = RunController(config, reporter)

    try:
        result: RunResult = controller.run(script)
    except MandatoryCheckFailed as e:
        logger.error("%s", e)
        print(f"{e}", file=sys.stderr)
        if e.summary is not None:
            print("partial results:", file=sys.stderr)
            print(reporter.format_summary(e.summary), file=sys.stderr)
        return EXIT_ABORTED
    except HarnessError as e:
        logger.error("harness failure: %s", e)
        print(f"harness failure: {e}", file=sys.stderr)
        return EXIT_ABORTED

    return result.exit_status
