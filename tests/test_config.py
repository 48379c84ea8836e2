"""Tests for YAML + environment configuration loading."""

from __future__ import annotations

from pathlib import Path

from jupstake.config import (
    CONFIG_PATH,
    JUP_MINT,
    WORKSPACE,
    StakingConfig,
    load_staking_config,
    load_staking_yaml,
)


def test_shipped_yaml_matches_defaults():
    config = StakingConfig.from_dict(load_staking_yaml(CONFIG_PATH))
    assert config.mint == JUP_MINT
    assert config.page_size == 100
    assert config.max_retries == 5
    assert config.series_path == WORKSPACE / "data" / "jupiter_combined_staking.json"
    assert config.wallet_snapshot_path.name == "wallet_states.json"


def test_sections_flattened(tmp_path):
    config = StakingConfig.from_dict({
        "wallets": {"epsilon": 0.01, "excluded": ["CRANK"]},
        "fetch": {"page_size": 25, "max_pages": 3},
        "files": {"data_dir": str(tmp_path), "series": "s.json"},
    })
    assert config.wallet_epsilon == 0.01
    assert config.excluded_wallets == ["CRANK"]
    assert config.page_size == 25
    assert config.max_pages == 3
    assert config.series_path == tmp_path / "s.json"


def test_relative_data_dir_resolves_against_workspace():
    config = StakingConfig.from_dict({"files": {"data_dir": "state"}})
    assert config.data_dir == WORKSPACE / "state"


def test_missing_yaml_gives_defaults(tmp_path):
    assert load_staking_yaml(tmp_path / "absent.yaml") == {}
    assert StakingConfig.from_dict({}).page_delay_seconds == 0.1


def test_api_key_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "staking.yaml"
    path.write_text("fetch:\n  page_size: 10\n")
    monkeypatch.setenv("HELIUS_API_KEY", "k-123")
    config = load_staking_config(path)
    assert config.helius_api_key == "k-123"
    assert config.page_size == 10
    assert isinstance(config.data_dir, Path)
