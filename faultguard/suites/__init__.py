# Bundled scripts for the faultguard harness
"""
Scripts shipped with the harness.

    selftest — default script; exercises the harness itself
"""
