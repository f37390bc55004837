#!/usr/bin/env python3
"""
Load the default rule set. Existing patterns are left untouched, so this is safe to rerun.
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from cmdgate.core.db import init_db
from cmdgate.core.rules import DEFAULT_RULES, seed_default_rules


def main():
    parser = argparse.ArgumentParser(
        description="Seed default command rules",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Rules are appended after any existing ones; matching is oldest first."
    )
    parser.add_argument("--list", action="store_true", help="Print the default rules and exit")
    args = parser.parse_args()

    if args.list:
        for pattern, action, example in DEFAULT_RULES:
            print(f"{action:12} {pattern:28} e.g. {example}")
        return 0

    init_db()
    print("Seeding default regex rules...")
    added = seed_default_rules()
    print(f"Seeding completed! {added} added, {len(DEFAULT_RULES) - added} already present")
    return 0


if __name__ == "__main__":
    sys.exit(main())
