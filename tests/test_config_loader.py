from pathlib import Path

import pytest

from shared.config.config_loader import MainConfig, load_config, load_risk_config
from shared.errors import ConfigError


def test_example_config_loads():
    cfg_path = Path(__file__).resolve().parents[1] / "config" / "config.yml"
    assert cfg_path.exists(), "示例配置缺失"

    cfg = load_config(str(cfg_path), load_env=False)
    assert isinstance(cfg, MainConfig)
    assert cfg.symbols
    assert cfg.mode == "paper"
    assert cfg.strategy.type == "ema_cross"
    assert cfg.strategy.params["fast"] == 9
    assert cfg.risk.risk_per_trade > 0


def test_defaults_applied_at_load(tmp_path: Path):
    cfg_file = tmp_path / "cfg.yml"
    cfg_file.write_text("symbol: BTCUSDT\nmode: dry_run\n", encoding="utf-8")

    cfg = load_config(str(cfg_file), load_env=False)
    assert cfg.symbols == ["BTCUSDT"]
    assert cfg.mode == "dry-run"
    assert cfg.risk.leverage == 5.0
    assert cfg.risk.commission_rate == pytest.approx(0.0009)
    assert cfg.optimizer.default_tp == 3.0
    assert load_risk_config() == cfg.risk


def test_load_config_expands_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PAPER_SYMBOL", "ETHUSDT")
    cfg_file = tmp_path / "cfg.yml"
    cfg_file.write_text("symbols: ['${PAPER_SYMBOL}']\n", encoding="utf-8")
    assert load_config(str(cfg_file), load_env=False).symbols == ["ETHUSDT"]


def test_load_config_missing_env_raises(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("PAPER_SYMBOL_MISSING", raising=False)
    cfg_file = tmp_path / "cfg.yml"
    cfg_file.write_text("symbols: ['${PAPER_SYMBOL_MISSING}']\n", encoding="utf-8")

    with pytest.raises(ConfigError) as exc:
        load_config(str(cfg_file), load_env=False)
    assert "Missing environment variable" in str(exc.value)


def test_load_config_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("PAPER_DOTENV_SYMBOL", raising=False)
    (tmp_path / ".env").write_text("PAPER_DOTENV_SYMBOL=SOLUSDT\n", encoding="utf-8")
    cfg_file = tmp_path / "cfg.yml"
    cfg_file.write_text("symbols: ['${PAPER_DOTENV_SYMBOL}']\n", encoding="utf-8")
    assert load_config(str(cfg_file)).symbols == ["SOLUSDT"]


def test_invalid_config_is_fatal(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.yml"))

    bad_yaml = tmp_path / "bad.yml"
    bad_yaml.write_text("symbols: [BTCUSDT\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(bad_yaml), load_env=False)

    unknown_key = tmp_path / "unknown.yml"
    unknown_key.write_text("symbols: [BTCUSDT]\nrisk:\n  leverag: 3\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(unknown_key), load_env=False)

    no_symbols = tmp_path / "empty.yml"
    no_symbols.write_text("symbols: []\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(no_symbols), load_env=False)
