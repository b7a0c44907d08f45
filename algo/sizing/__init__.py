from algo.sizing.atr_risk import AtrRiskSizer
from algo.sizing.base import SizingDecision, TpSlParams

__all__ = ["AtrRiskSizer", "SizingDecision", "TpSlParams"]
