# file: tests/test_risk.py
import math

import pytest

from signals_trader.models import Side, TradeSignal
from signals_trader.risk import format_risk_reward, risk_reward


def _sig(entry, tp, sl, side=Side.LONG):
    return TradeSignal(symbol="BTCUSDT", side=side, entry_price=entry, take_profits=(tp,), stop_loss=sl)


def test_risk_reward_uses_first_target(long_signal):
    # entry 100, tp1 110, sl 90
    assert risk_reward(long_signal) == pytest.approx(1.0)


def test_risk_reward_short(short_signal):
    assert risk_reward(short_signal) == pytest.approx(1.0)


def test_risk_reward_btc_sample():
    sig = _sig(95093.0, 96117.71, 94861.68)
    assert risk_reward(sig) == pytest.approx(1024.71 / 231.32)


def test_risk_reward_scale_invariant():
    base = risk_reward(_sig(100.0, 125.0, 90.0))
    scaled = risk_reward(_sig(100_000.0, 125_000.0, 90_000.0))
    assert base == pytest.approx(2.5)
    assert scaled == pytest.approx(base)


def test_risk_reward_zero_risk():
    """Стоп на уровне входа: бесконечность, а не ZeroDivisionError."""
    assert math.isinf(risk_reward(_sig(100.0, 110.0, 100.0)))
    assert math.isnan(risk_reward(_sig(100.0, 100.0, 100.0)))


@pytest.mark.parametrize(
    "ratio,expected",
    [(2.5, "2.50:1"), (1 / 3, "0.33:1"), (math.inf, "∞"), (math.nan, "n/a")],
)
def test_format_risk_reward(ratio, expected):
    assert format_risk_reward(ratio) == expected
