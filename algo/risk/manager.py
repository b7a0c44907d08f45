"""组合层面风控闸门：敞口上限 / 余额 / 并发持仓数。"""

from __future__ import annotations

from shared.config.schema import RiskConfig
from shared.errors import ExposureExceeded, InsufficientBalance, PositionLimitReached
from shared.utils.logging import setup_logger


class RiskManager:
    """风险管理器。

    只做判断，不持有账户状态；不通过时抛出对应的可恢复错误，
    由 sizer 转换为拒单诊断。

    Parameters
    ----------
    risk_cfg:
        风控配置。
    suppress_warnings:
        是否抑制 warning 日志（回放/扫参常用）。
    """

    def __init__(self, risk_cfg: RiskConfig, suppress_warnings: bool = False):
        self.cfg = risk_cfg
        self.logger = setup_logger("risk")
        self.suppress_warnings = suppress_warnings

    def exposure_of(self, *, notional: float, margin: float) -> float:
        """按 exposure_mode 取单笔敞口。"""
        return notional if self.cfg.exposure_mode == "notional" else margin

    def check_position_limit(self, open_positions: int) -> None:
        if open_positions >= self.cfg.max_concurrent_positions:
            raise PositionLimitReached(
                f"open positions {open_positions} >= max {self.cfg.max_concurrent_positions}"
            )

    def check_exposure(self, open_exposure: float, additional: float) -> None:
        total = open_exposure + additional
        if total > self.cfg.max_exposure_usd:
            raise ExposureExceeded(
                f"exposure {total:.4f} > max_exposure_usd {self.cfg.max_exposure_usd:.4f}"
            )

    def check_balance(self, balance: float, required_margin: float, commission_open: float) -> None:
        required = required_margin + commission_open
        if balance < required:
            if not self.suppress_warnings:
                self.logger.warning(
                    "Insufficient balance: %.4f < margin %.4f + commission %.4f",
                    balance,
                    required_margin,
                    commission_open,
                )
            raise InsufficientBalance(f"balance {balance:.4f} < required {required:.4f}")
