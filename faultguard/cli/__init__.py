# CLI package for the faultguard harness
"""
Command surface for running scripts.

    faultguard [-h] [-c] [-k] [-s] [-v] [--signal NAME] [--] [SCRIPT]
"""
