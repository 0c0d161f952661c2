#!/usr/bin/env python3
"""
run_triage.py
Convenience wrapper for the triage prompt.

This script is a thin shim — all logic is in triage/cli.py.

Usage:
    python run_triage.py --config triage.json
    python run_triage.py --config triage.json --verbose
"""

from triage.cli import main

if __name__ == '__main__':
    main()
