"""Daily Update — bring the staking series up to date through yesterday.

Usage:
    python3 -m jupstake.skills.daily_update                    # Exact wallet tracking
    python3 -m jupstake.skills.daily_update --estimate-wallets # No wallet snapshot needed
    python3 -m jupstake.skills.daily_update --max-pages 50     # Safety limit on pages

Exit codes:
    0 = updated, or already up to date
    1 = failed (missing/malformed state, API failure)

Output:
    JSON with status, latest totals, and per-day deltas.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from jupstake.clients.base import APIError
from jupstake.clients.helius import HeliusClient
from jupstake.config import StakingConfig, load_staking_config
from jupstake.core.merge import MergeError
from jupstake.core.wallets import StateLoadError
from jupstake.pipeline import run_update

log = logging.getLogger("jupstake.skills.daily_update")


async def update(config: StakingConfig, estimate_wallets: bool = False) -> dict[str, Any]:
    """Run one incremental update against Helius and return a JSON-able result."""
    async with HeliusClient(
        api_key=config.helius_api_key,
        max_retries=config.max_retries,
        backoff_base=config.backoff_base_seconds,
        backoff_max=config.backoff_max_seconds,
    ) as client:
        try:
            result = await run_update(config, client, estimate_wallets=estimate_wallets)
        except (StateLoadError, MergeError) as e:
            return {"status": "FAILED", "message": f"Cannot establish baseline: {e}"}
        except APIError as e:
            return {"status": "FAILED", "message": f"Fetch failed: {e}", "provider": e.provider}
    return result.to_dict()


def main() -> None:
    parser = argparse.ArgumentParser(description="Jupiter staking — incremental daily update")
    parser.add_argument("--config", type=Path, help="Path to staking.yaml")
    parser.add_argument("--estimate-wallets", action="store_true",
                        help="Estimate active wallets instead of tracking the wallet snapshot")
    parser.add_argument("--max-pages", type=int, metavar="N", help="Stop after N transaction pages")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    config = load_staking_config(args.config)
    if args.max_pages is not None:
        config.max_pages = args.max_pages
    if not config.helius_api_key:
        log.warning("HELIUS_API_KEY is not set")

    result = asyncio.run(update(config, estimate_wallets=args.estimate_wallets))
    print(json.dumps(result, indent=2))
    sys.exit(1 if result["status"] == "FAILED" else 0)


if __name__ == "__main__":
    main()
