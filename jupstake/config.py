"""Configuration loader for the staking tracker.

Loads config/staking.yaml and the HELIUS_API_KEY from the environment
(.env is honoured via python-dotenv).
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

WORKSPACE = Path(__file__).resolve().parent.parent
CONFIG_DIR = WORKSPACE / "config"
CONFIG_PATH = CONFIG_DIR / "staking.yaml"

JUPITER_STAKING_PROGRAM = "voTpe3tHQ7AjQHMapgSue2HJFAh2cGsdokqN3XqmVSj"
CLAIM_STAKE_PROGRAM = "DiS3nNjFVMieMgmiQFm6wgJL7nevk4NrhXKLbtEH1Z2R"
JUP_MINT = "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN"
WALLET_EPSILON = 1e-6


class StakingConfig(BaseModel):
    """Resolved run configuration, threaded explicitly into the pipeline."""

    staking_program: str = JUPITER_STAKING_PROGRAM
    distributor_program: str = CLAIM_STAKE_PROGRAM
    mint: str = JUP_MINT

    wallet_epsilon: float = WALLET_EPSILON
    excluded_wallets: list[str] = Field(default_factory=list)

    page_size: int = 100
    page_delay_seconds: float = 0.1
    max_pages: int | None = None
    max_retries: int = 5
    backoff_base_seconds: float = 2.0
    backoff_max_seconds: float = 30.0

    data_dir: Path = WORKSPACE / "data"
    series_file: str = "jupiter_combined_staking.json"
    series_csv_file: str = "jupiter_combined_staking.csv"
    wallet_snapshot_file: str = "wallet_states.json"

    helius_api_key: str = ""

    @property
    def series_path(self) -> Path:
        return self.data_dir / self.series_file

    @property
    def series_csv_path(self) -> Path:
        return self.data_dir / self.series_csv_file

    @property
    def wallet_snapshot_path(self) -> Path:
        return self.data_dir / self.wallet_snapshot_file

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> StakingConfig:
        """Flatten the sectioned YAML layout into a config model."""
        programs = raw.get("programs", {}) or {}
        token = raw.get("token", {}) or {}
        wallets = raw.get("wallets", {}) or {}
        fetch = raw.get("fetch", {}) or {}
        files = raw.get("files", {}) or {}

        values: dict[str, Any] = {
            "staking_program": programs.get("staking"),
            "distributor_program": programs.get("distributor"),
            "mint": token.get("mint"),
            "wallet_epsilon": wallets.get("epsilon"),
            "excluded_wallets": wallets.get("excluded"),
            "page_size": fetch.get("page_size"),
            "page_delay_seconds": fetch.get("page_delay_seconds"),
            "max_pages": fetch.get("max_pages"),
            "max_retries": fetch.get("max_retries"),
            "backoff_base_seconds": fetch.get("backoff_base_seconds"),
            "backoff_max_seconds": fetch.get("backoff_max_seconds"),
            "series_file": files.get("series"),
            "series_csv_file": files.get("series_csv"),
            "wallet_snapshot_file": files.get("wallet_snapshot"),
        }
        data_dir = files.get("data_dir")
        if data_dir:
            path = Path(data_dir)
            values["data_dir"] = path if path.is_absolute() else WORKSPACE / path

        # Unset keys fall back to model defaults
        return cls(**{k: v for k, v in values.items() if v is not None})


def load_staking_yaml(path: Path | None = None) -> dict[str, Any]:
    """Load config/staking.yaml."""
    path = path or CONFIG_PATH
    if not path.exists():
        return {}
    return yaml.safe_load(path.read_text()) or {}


def load_staking_config(path: Path | None = None) -> StakingConfig:
    """Load YAML settings plus the Helius API key from the environment."""
    load_dotenv(override=False)
    config = StakingConfig.from_dict(load_staking_yaml(path))
    config.helius_api_key = os.environ.get("HELIUS_API_KEY", "")
    return config
