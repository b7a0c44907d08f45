"""基于 ATR 的风险定仓。

流程：
1. risk_amount = balance * risk_per_trade
2. stop_distance = max(ATR, price * min_stop_pct)
3. size = risk_amount / stop_distance
4. notional 超过 max_notional_per_trade 时按上限裁剪 size
5. required_margin = notional / leverage，commission_open = notional * commission_rate
6. 敞口上限检查
7. 余额检查（保证金 + 开仓手续费）
8. TP/SL 价位

本模块不修改任何共享状态，只返回 `SizingDecision`。
"""

from __future__ import annotations

import math

from algo.risk.manager import RiskManager
from algo.sizing.base import SizingDecision, TpSlParams
from shared.config.schema import RiskConfig
from shared.errors import TradingError
from shared.models.models import Side


class AtrRiskSizer:
    def __init__(self, risk_cfg: RiskConfig, risk_manager: RiskManager | None = None):
        self.cfg = risk_cfg
        self.risk = risk_manager or RiskManager(risk_cfg)

    def default_tp_sl(self) -> TpSlParams:
        return TpSlParams(tp=self.cfg.tp_multiplier, sl=self.cfg.sl_multiplier, mode="atr")

    def size(
        self,
        *,
        symbol: str,
        side: Side,
        balance: float,
        price: float,
        atr: float,
        open_exposure: float = 0.0,
        open_positions: int = 0,
        tp_sl: TpSlParams | None = None,
    ) -> SizingDecision:
        """计算单笔开仓参数。

        Parameters
        ----------
        open_exposure:
            当前所有持仓的敞口（按 exposure_mode 统计）。
        open_positions:
            当前持仓数量，用于并发上限检查。
        tp_sl:
            覆盖默认 ATR 倍数（例如扫参得到的最优参数）。
        """
        cfg = self.cfg
        if price <= 0 or not math.isfinite(price):
            return SizingDecision.reject(symbol, side, "invalid_price", price=price)
        if not math.isfinite(atr) or atr < 0:
            return SizingDecision.reject(symbol, side, "invalid_atr", price=price, atr=atr)

        risk_amount = balance * cfg.risk_per_trade
        stop_distance = max(atr, price * cfg.min_stop_pct)
        if stop_distance <= 0:
            return SizingDecision.reject(symbol, side, "zero_stop_distance", price=price, atr=atr)

        size = risk_amount / stop_distance
        if size <= 0:
            return SizingDecision.reject(
                symbol, side, "non_positive_size", price=price, atr=atr, risk_amount=risk_amount
            )

        notional = price * size
        clamped = False
        if notional > cfg.max_notional_per_trade:
            size = cfg.max_notional_per_trade / price
            notional = price * size
            clamped = True

        required_margin = notional / cfg.leverage
        commission_open = notional * cfg.commission_rate
        take_profit, stop_loss = (tp_sl or self.default_tp_sl()).levels(side, price, atr)

        values = dict(
            price=price,
            atr=atr,
            risk_amount=risk_amount,
            stop_distance=stop_distance,
            size=size,
            notional=notional,
            required_margin=required_margin,
            commission_open=commission_open,
            take_profit=take_profit,
            stop_loss=stop_loss,
            clamped=clamped,
        )

        try:
            self.risk.check_position_limit(open_positions)
            self.risk.check_exposure(
                open_exposure, self.risk.exposure_of(notional=notional, margin=required_margin)
            )
            self.risk.check_balance(balance, required_margin, commission_open)
        except TradingError as exc:
            return SizingDecision.reject(symbol, side, str(exc), error=exc, **values)

        return SizingDecision(accepted=True, symbol=symbol, side=side, **values)
