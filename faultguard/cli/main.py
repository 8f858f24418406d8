"""
faultguard CLI — run a script of checks that survives fatal faults.

Usage:
    faultguard [-h] [-c] [-k] [-s] [-v] [--signal NAME] [--] [SCRIPT]

Options:
    -h  print this help message and exit (unsuccessfully, so a help
        invocation never counts as a passing run)
    -c  turn colorized output on
    -k  keep temporary run artifacts
    -s  silent mode
    -v  verbose logging on stderr
    --signal NAME  also treat signal NAME as a fatal fault (repeatable)
    --  stop processing command line options

SCRIPT is "module:attribute" naming a Script. The default is the bundled
self-test suite. The exit status is zero only if every check passed.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from ..config import EXIT_USAGE, HarnessConfig
from .runner import execute


# =============================================================================
# CONFIGURATION
# =============================================================================

def configure_logging(verbose: bool) -> None:
    """Diagnostics go to stderr; the report stream owns stdout."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )


def build_config(args: argparse.Namespace) -> HarnessConfig:
    """Environment defaults overridden by command line flags."""
    config = HarnessConfig.from_env()
    config.color = config.color or args.color
    config.silent = config.silent or args.silent
    config.keep_files = config.keep_files or args.keep
    config.verbose = args.verbose
    if args.script:
        config.script = args.script
    if args.signal:
        config = config.with_signals(args.signal)
    return config


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="faultguard",
        description="Run a script of checks, surviving fatal faults in the code under test.",
        add_help=False,
    )
    parser.add_argument(
        "-h", "--help",
        action="store_true",
        help="print this help message and exit unsuccessfully",
    )
    parser.add_argument(
        "-c", "--color",
        action="store_true",
        help="turn colorized output on",
    )
    parser.add_argument(
        "-k", "--keep",
        action="store_true",
        help="keep temporary run artifacts",
    )
    parser.add_argument(
        "-s", "--silent",
        action="store_true",
        help="silent mode",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="verbose logging on stderr",
    )
    parser.add_argument(
        "--signal",
        action="append",
        metavar="NAME",
        help="also treat signal NAME as a fatal fault",
    )
    parser.add_argument(
        "script",
        nargs="?",
        help="script to run, as module:attribute",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.help:
        parser.print_help(sys.stderr)
        return EXIT_USAGE

    try:
        config = build_config(args)
    except ValueError as e:
        print(f"invalid argument: {e}", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return EXIT_USAGE

    configure_logging(config.verbose)
    return execute(config)


if __name__ == "__main__":
    sys.exit(main())
