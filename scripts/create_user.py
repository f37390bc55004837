#!/usr/bin/env python3
"""
Create a user from the command line and print its API key.
Use this to bootstrap the first admin; afterwards admins can use POST /users.
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from cmdgate.core.config import INITIAL_CREDITS
from cmdgate.core.db import init_db
from cmdgate.core.errors import CommandGateError
from cmdgate.core.schema import Role
from cmdgate.core.users import create_user


def main():
    parser = argparse.ArgumentParser(
        description="Create a command gateway user",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s alice alice@example.com --role admin
  %(prog)s bob bob@example.com --role approver --credits 0
        """
    )
    parser.add_argument("username")
    parser.add_argument("email")
    parser.add_argument("--role", choices=Role.ALL, default=Role.MEMBER)
    parser.add_argument("--credits", type=int, default=INITIAL_CREDITS)
    args = parser.parse_args()

    init_db()
    try:
        user, api_key = create_user(args.username, args.email, args.role, args.credits)
    except CommandGateError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    print(f"Created {user.role} '{user.username}' ({user.id}) with {user.credits} credits")
    print(f"API key: {api_key}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
