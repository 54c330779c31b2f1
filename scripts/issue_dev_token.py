"""Issue a bearer token for local development.

Tokens are normally issued by the identity service in front of this API. This script
only runs when APP_ENV=development.

Usage:
    APP_ENV=development python -m scripts.issue_dev_token <user_id> [--minutes 60]
"""

# ruff: noqa: I001
# pyright: reportMissingImports=false
from __future__ import annotations

import argparse
import sys
from datetime import timedelta

from app.core.security import create_access_token
from app.core.settings import get_settings


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("user_id", help="Value for the token's `sub` claim.")
    parser.add_argument("--minutes", type=int, default=None, help="Token lifetime in minutes.")
    args = parser.parse_args(argv)

    settings = get_settings()
    if not settings.is_development:
        print("Refusing to issue tokens outside APP_ENV=development.", file=sys.stderr)
        return 1

    expires = timedelta(minutes=args.minutes) if args.minutes else None
    print(create_access_token(subject=args.user_id, settings=settings, expires_delta=expires))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
