#!/usr/bin/env python3
"""Standalone CLI script for running an Azure Quick Review scan.

Equivalent to the ``azqr`` console script; see ``azqr --help`` for options.

Usage:
    python scripts/run_scan.py [options]
"""

import sys

from azqr.cli import main

if __name__ == "__main__":
    sys.exit(main())
