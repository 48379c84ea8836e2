"""Persisted tracker state: cumulative series and wallet snapshot.

The series file (jupiter_combined_staking.json) is the long-lived,
newest-first history of total staked JUP and active wallets. The wallet
snapshot (wallet_states.json) is the per-wallet balance map as of the
series' latest date. Both are read and written through utils.file_lock.
"""

from __future__ import annotations

import csv
import json
import logging
from pathlib import Path

from pydantic import ValidationError

from jupstake.config import WALLET_EPSILON
from jupstake.core.schema import CumulativeSeries, WalletSnapshot
from jupstake.core.wallets import StateLoadError
from jupstake.utils.file_lock import safe_read_json, safe_write_csv, safe_write_json

log = logging.getLogger("jupstake.state")

SERIES_CSV_HEADER = ["Snapshot Date", "Total Staked Amount", "Active Wallets"]


def _read(path: Path, what: str) -> object:
    try:
        return safe_read_json(path)
    except FileNotFoundError as e:
        raise StateLoadError(f"{what} not found: {path}") from e
    except json.JSONDecodeError as e:
        raise StateLoadError(f"{what} is not valid JSON: {path} ({e})") from e


def load_series(path: Path) -> CumulativeSeries:
    """Load the cumulative series. Raises StateLoadError if missing or malformed."""
    raw = _read(path, "Series file")
    if not isinstance(raw, dict):
        raise StateLoadError(f"Series file must hold an object: {path}")
    try:
        series = CumulativeSeries.model_validate(raw)
    except ValidationError as e:
        raise StateLoadError(f"Malformed series file {path}: {e}") from e
    log.info(
        "Loaded %d series records from %s (latest %s)",
        len(series.daily_data), path.name, series.summary.latest_date,
    )
    return series


def save_series(path: Path, series: CumulativeSeries) -> None:
    safe_write_json(path, series.to_json())
    log.info("Saved %d series records to %s", len(series.daily_data), path)


def export_series_csv(path: Path, series: CumulativeSeries) -> None:
    """Flat CSV copy of the series, newest first."""
    rows = (
        [entry.date, entry.total_staked, "" if entry.active_wallets is None else entry.active_wallets]
        for entry in series.daily_data
    )
    safe_write_csv(path, SERIES_CSV_HEADER, rows)


def load_wallet_snapshot(path: Path) -> WalletSnapshot:
    """Load the wallet snapshot. Raises StateLoadError if missing or malformed."""
    raw = _read(path, "Wallet snapshot")
    if not isinstance(raw, dict):
        raise StateLoadError(f"Wallet snapshot must hold an object: {path}")
    try:
        snapshot = WalletSnapshot.model_validate(raw)
    except ValidationError as e:
        raise StateLoadError(f"Malformed wallet snapshot {path}: {e}") from e
    log.info("Loaded %d wallets as of %s", len(snapshot.wallets), snapshot.as_of_date)
    return snapshot


def save_wallet_snapshot(path: Path, snapshot: WalletSnapshot) -> None:
    safe_write_json(path, snapshot.model_dump(by_alias=True))
    log.info("Saved %d wallets as of %s to %s", len(snapshot.wallets), snapshot.as_of_date, path)


def build_snapshot_from_csv(
    csv_path: Path,
    as_of_date: str,
    epsilon: float = WALLET_EPSILON,
) -> WalletSnapshot:
    """Build a wallet snapshot from a `wallet,balance` CSV export.

    The first row is a header. Blank rows, rows with a non-numeric
    balance, and balances at or below epsilon are skipped.
    """
    if not csv_path.exists():
        raise StateLoadError(f"Balances CSV not found: {csv_path}")

    wallets: dict[str, float] = {}
    skipped = 0
    with open(csv_path, newline="") as f:
        reader = csv.reader(f)
        next(reader, None)
        for row in reader:
            if len(row) < 2 or not row[0].strip():
                continue
            try:
                balance = float(row[1])
            except ValueError:
                skipped += 1
                continue
            if balance > epsilon:
                wallets[row[0].strip()] = balance

    if skipped:
        log.warning("Skipped %d rows with unparseable balances in %s", skipped, csv_path)
    return WalletSnapshot(as_of_date=as_of_date, wallets=wallets)
