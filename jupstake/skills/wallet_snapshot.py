"""Wallet Snapshot — build wallet_states.json from a balances CSV.

Seeds exact wallet tracking from an external `wallet,balance` export.
The as-of date must match the series' latest date for daily_update to
accept the snapshot.

Usage:
    python3 -m jupstake.skills.wallet_snapshot --csv staking_wallets.csv --as-of 2025-07-29
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from jupstake.config import load_staking_config
from jupstake.core.wallets import StateLoadError
from jupstake.state import build_snapshot_from_csv, save_wallet_snapshot


def build(csv_path: Path, as_of: str, output: Path, epsilon: float) -> dict[str, Any]:
    """Write the snapshot and return summary figures."""
    snapshot = build_snapshot_from_csv(csv_path, as_of, epsilon)
    save_wallet_snapshot(output, snapshot)

    total = sum(snapshot.wallets.values())
    count = len(snapshot.wallets)
    return {
        "status": "OK",
        "output": str(output),
        "as_of_date": snapshot.as_of_date,
        "active_wallets": count,
        "total_staked": total,
        "average_balance": round(total / count, 2) if count else 0.0,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Jupiter staking — wallet snapshot builder")
    parser.add_argument("--csv", type=Path, required=True, help="CSV of wallet,balance with a header row")
    parser.add_argument("--as-of", required=True, help="Snapshot date (YYYY-MM-DD)")
    parser.add_argument("--output", type=Path, help="Output path (default: configured snapshot file)")
    args = parser.parse_args()

    config = load_staking_config()
    output = args.output or config.wallet_snapshot_path
    try:
        result = build(args.csv, args.as_of, output, config.wallet_epsilon)
    except (StateLoadError, ValueError) as e:
        result = {"status": "FAILED", "message": str(e)}

    print(json.dumps(result, indent=2))
    sys.exit(0 if result["status"] == "OK" else 1)


if __name__ == "__main__":
    main()
