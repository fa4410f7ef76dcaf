from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from route_pricing.aggregation import RemoteAggregationJob  # noqa: E402
from route_pricing.errors import AggregationError  # noqa: E402
from route_pricing.settings import settings  # noqa: E402


async def run_refresh(job: RemoteAggregationJob) -> dict[str, Any]:
    try:
        result = await job.refresh()
    finally:
        await job.aclose()
    return result.model_dump(mode="json")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Trigger the route cluster refresh and print the row counts.")
    parser.add_argument("--base-url", default=settings.aggregation_base_url)
    parser.add_argument("--api-key", default=settings.aggregation_api_key)
    parser.add_argument("--timeout-s", type=float, default=settings.aggregation_timeout_s)
    args = parser.parse_args(argv)

    job = RemoteAggregationJob(base_url=args.base_url, api_key=args.api_key, timeout_s=args.timeout_s)
    try:
        summary = asyncio.run(run_refresh(job))
    except AggregationError as e:
        print(str(e), file=sys.stderr)
        return 1
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
