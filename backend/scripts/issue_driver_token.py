from __future__ import annotations

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from route_pricing.auth import issue_session_token  # noqa: E402


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Mint a signed driver session token for /submit-route.")
    parser.add_argument("driver_id")
    parser.add_argument("--secret", default=None, help="Defaults to SESSION_SIGNING_SECRET.")
    args = parser.parse_args(argv)

    try:
        token = issue_session_token(args.driver_id, secret=args.secret)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2
    print(token)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
