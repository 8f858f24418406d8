"""
faultguard CLI entry point.

Usage:
    python -m faultguard.cli
    python -m faultguard.cli -s mypackage.checks:SCRIPT
"""

import sys
from .main import main

if __name__ == "__main__":
    sys.exit(main())
