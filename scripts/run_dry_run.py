#!/usr/bin/env python3
"""
Dry Run - Assign call/float, optimize clinic coverage, report conflicts

Usage:
  python scripts/run_dry_run.py --config-dir config/ --seed 7 --output-json outputs/run.json

Prints a summary; writes JSON only when --output-json is given.
"""

import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from duty_scheduler.dry_run import main

if __name__ == "__main__":
    main()
