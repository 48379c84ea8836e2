"""Wallet Activity — every staking interaction paid for by one wallet.

Pages the wallet's own transaction history and reports the stakes and
withdrawals it made through the staking program. Useful for spotting
automated wallets (e.g. the crank) whose flows distort the daily series.

Usage:
    python3 -m jupstake.skills.wallet_activity                      # Crank wallet
    python3 -m jupstake.skills.wallet_activity --wallet <address>
    python3 -m jupstake.skills.wallet_activity --max-pages 20 --no-save
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from jupstake.clients.base import APIError
from jupstake.clients.helius import HeliusClient
from jupstake.config import StakingConfig, load_staking_config
from jupstake.core.analyzer import analyze, extract_amount
from jupstake.core.schema import Transaction, TxKind
from jupstake.pipeline import TransactionSource, paginate
from jupstake.utils.file_lock import safe_write_json

CRANK_WALLET = "crankz76bWa5KE4k8G4AfRg5NfNSj9baLxyVgikxr9r"
IDLE_PAGE_LIMIT = 100

log = logging.getLogger("jupstake.skills.wallet_activity")


@dataclass
class WalletInteraction:
    signature: str
    timestamp: int
    date: str
    date_time: str
    action_type: str  # STAKE | WITHDRAW
    amount: float
    transaction_type: str
    instructions: list[str] = field(default_factory=list)


def scan_wallet_interaction(
    transaction: Transaction,
    wallet: str,
    config: StakingConfig | None = None,
) -> WalletInteraction | None:
    """Interaction record if wallet paid for a staking move in transaction."""
    config = config or StakingConfig()
    if transaction.payer != wallet:
        return None

    analysis = analyze(transaction, config.staking_program, config.distributor_program)
    if analysis.kind == TxKind.UNKNOWN or not analysis.actions:
        return None

    amount = extract_amount(transaction.token_transfers, config.mint)
    if amount == 0:
        return None

    if any(a.kind.is_stake for a in analysis.actions):
        action_type = "STAKE"
    elif any(a.kind.is_withdraw for a in analysis.actions):
        action_type = "WITHDRAW"
    else:
        return None

    moment = datetime.fromtimestamp(transaction.timestamp, tz=timezone.utc)
    return WalletInteraction(
        signature=transaction.signature,
        timestamp=transaction.timestamp,
        date=transaction.date,
        date_time=moment.strftime("%Y-%m-%d %H:%M:%S UTC"),
        action_type=action_type,
        amount=amount,
        transaction_type=analysis.kind.value,
        instructions=[a.kind.value for a in analysis.actions],
    )


def summarize_interactions(wallet: str, interactions: list[WalletInteraction]) -> dict[str, Any]:
    """Totals plus first/last interaction; interactions are newest first."""
    ordered = sorted(interactions, key=lambda i: i.timestamp, reverse=True)
    staked = sum(i.amount for i in ordered if i.action_type == "STAKE")
    withdrawn = sum(i.amount for i in ordered if i.action_type == "WITHDRAW")
    return {
        "wallet": wallet,
        "total_interactions": len(ordered),
        "total_staked": staked,
        "total_withdrawn": withdrawn,
        "net_position": staked - withdrawn,
        "first_interaction": asdict(ordered[-1]) if ordered else None,
        "last_interaction": asdict(ordered[0]) if ordered else None,
        "interactions": [asdict(i) for i in ordered],
    }


async def find_interactions(
    source: TransactionSource,
    wallet: str,
    config: StakingConfig,
    max_pages: int | None = None,
) -> dict[str, Any]:
    interactions: list[WalletInteraction] = []

    def handle(transaction: Transaction) -> bool:
        found = scan_wallet_interaction(transaction, wallet, config)
        if found is None:
            return False
        interactions.append(found)
        return True

    pagination = await paginate(
        source,
        wallet,
        handle,
        page_size=config.page_size,
        max_pages=max_pages,
        page_delay=max(config.page_delay_seconds, 0.3),
        idle_page_limit=IDLE_PAGE_LIMIT,
    )
    result = summarize_interactions(wallet, interactions)
    result["pages"] = pagination.pages
    result["transactions_examined"] = pagination.transactions
    result["oldest_date"] = pagination.oldest_date
    return result


async def run(wallet: str, config: StakingConfig, max_pages: int | None, save: bool) -> dict[str, Any]:
    async with HeliusClient(
        api_key=config.helius_api_key,
        max_retries=config.max_retries,
        backoff_base=config.backoff_base_seconds,
        backoff_max=config.backoff_max_seconds,
    ) as client:
        try:
            result = await find_interactions(client, wallet, config, max_pages)
        except APIError as e:
            return {"status": "FAILED", "message": f"Fetch failed: {e}"}

    result["status"] = "OK"
    if save:
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        path = config.data_dir / f"wallet_interactions_{wallet[:8]}_{today}.json"
        safe_write_json(path, result)
        result["saved_to"] = str(path)
    if result["first_interaction"]:
        log.info("Staking activity since %s", result["first_interaction"]["date"])
    return result


def main() -> None:
    parser = argparse.ArgumentParser(description="Jupiter staking — wallet interaction scan")
    parser.add_argument("--wallet", default=CRANK_WALLET, help="Wallet address (default: crank wallet)")
    parser.add_argument("--max-pages", type=int, metavar="N", help="Stop after N transaction pages")
    parser.add_argument("--no-save", action="store_true", help="Do not write the JSON report")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)

    config = load_staking_config()
    result = asyncio.run(run(args.wallet, config, args.max_pages, save=not args.no_save))
    print(json.dumps(result, indent=2))
    sys.exit(0 if result["status"] == "OK" else 1)


if __name__ == "__main__":
    main()
