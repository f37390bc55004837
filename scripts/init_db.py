#!/usr/bin/env python3
"""
Create the gateway's tables and optionally load the default rule set.
"""

import argparse
import sys
from pathlib import Path

# Add the project root to sys.path to import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from cmdgate.core.config import get_db_path
from cmdgate.core.db import health_check, init_db
from cmdgate.core.rules import seed_default_rules


def main():
    parser = argparse.ArgumentParser(description="Initialize the command gateway database")
    parser.add_argument("--seed", action="store_true", help="Also insert the default rules")
    args = parser.parse_args()

    init_db()
    print(f"Database initialized at {get_db_path()}")

    if args.seed:
        added = seed_default_rules()
        print(f"Seeded {added} default rule(s)")

    if not health_check():
        print("Database health check failed", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
