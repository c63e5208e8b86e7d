from __future__ import annotations

import math

from .models import TradeSignal


def risk_reward(sig: TradeSignal) -> float:
    """
    Reward/risk по первой цели: |tp1 - entry| / |entry - sl|.
    entry == sl → inf (или nan, если и reward нулевой), без исключений.
    """
    risk = abs(sig.entry_price - sig.stop_loss)
    reward = abs(sig.first_target - sig.entry_price)
    if risk == 0:
        return math.nan if reward == 0 else math.inf
    return reward / risk


def format_risk_reward(ratio: float) -> str:
    if math.isnan(ratio):
        return "n/a"
    if math.isinf(ratio):
        return "∞"
    return f"{ratio:.2f}:1"
