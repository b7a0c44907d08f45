"""配置加载。

支持 YAML 配置、环境变量占位符 `${VAR}` 展开，以及 .env/.env.local 自动加载。
默认值与类型校验统一交给 `shared.config.schema`。
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from shared.config.schema import (
    ExchangeConfig,
    LoggingConfig,
    MainConfig,
    OptimizerConfig,
    RiskConfig,
    StrategyConfig,
)
from shared.errors import ConfigError

__all__ = [
    "ExchangeConfig",
    "LoggingConfig",
    "MainConfig",
    "OptimizerConfig",
    "RiskConfig",
    "StrategyConfig",
    "load_config",
    "load_risk_config",
    "parse_config",
]


def _load_env_file(env_path: Path):
    if not env_path.exists():
        return
    for line in env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _load_envs(cfg_path: Path):
    """
    加载配置文件目录与仓库根目录下的 .env/.env.local（不覆盖已有环境变量）。
    """
    candidates = [
        cfg_path.parent / ".env",
        cfg_path.parent / ".env.local",
        cfg_path.parent.parent / ".env",
        cfg_path.parent.parent / ".env.local",
    ]
    for env_file in candidates:
        _load_env_file(env_file)


def _expand_env(value: Any) -> Any:
    if isinstance(value, str):
        def replacer(match):
            var_name = match.group(1)
            if var_name not in os.environ:
                raise ConfigError(f"Missing environment variable: {var_name}")
            return os.environ[var_name]

        return re.sub(r"\$\{([^}]+)\}", replacer, value)
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value


def parse_config(raw_cfg: dict[str, Any]) -> MainConfig:
    """把 raw dict 校验为 `MainConfig`。"""
    try:
        return MainConfig.model_validate(raw_cfg)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config: {exc}") from exc


def load_config(path: str, load_env: bool = True, expand_env: bool = True) -> MainConfig:
    """从 YAML 读取并解析配置。

    Parameters
    ----------
    path:
        配置文件路径。
    load_env:
        是否自动加载 .env/.env.local。
    expand_env:
        是否展开 `${VAR}` 占位符。

    Returns
    -------
    MainConfig
        解析后的配置对象（默认值已应用）。

    Raises
    ------
    FileNotFoundError
        配置文件不存在。
    ConfigError
        YAML 格式错误、字段非法或缺失环境变量。
    """
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    if load_env:
        _load_envs(cfg_path)

    try:
        with cfg_path.open("r", encoding="utf-8") as f:
            raw_cfg = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Malformed config file {cfg_path}: {exc}") from exc

    if not isinstance(raw_cfg, dict):
        raise ConfigError("Config root must be a mapping")

    if expand_env:
        raw_cfg = _expand_env(raw_cfg)
    return parse_config(raw_cfg)


def load_risk_config(path: str | None = None) -> RiskConfig:
    """只取风控段；无路径时返回全默认 RiskConfig。"""
    if path is None:
        return RiskConfig()
    return load_config(path).risk
