# file: tests/test_encoding.py
import base64

import pytest

from signals_trader.encoding import (
    DEEPLINK_RAW,
    decode_signal,
    encode_signal,
    generate_deeplink,
    is_encoded_signal,
)
from signals_trader.models import Side, TradeSignal
from signals_trader.parser import parse_signal
from tests.samples import BTC_SIGNAL_TEXT, SOL_SIGNAL_TEXT


def _token(payload: str) -> str:
    return base64.urlsafe_b64encode(payload.encode()).decode().rstrip("=")


@pytest.mark.parametrize("text", [BTC_SIGNAL_TEXT, SOL_SIGNAL_TEXT])
def test_encode_decode_preserves_trade_fields(text):
    sig = parse_signal(text).signal
    decoded = decode_signal(encode_signal(sig))

    assert decoded is not None
    assert decoded.symbol == sig.symbol
    assert decoded.side is sig.side
    assert decoded.entry_price == sig.entry_price
    assert decoded.take_profits == sig.take_profits
    assert decoded.stop_loss == sig.stop_loss
    assert decoded.leverage == sig.leverage
    assert decoded.raw == DEEPLINK_RAW


def test_encode_payload_layout():
    sig = parse_signal(SOL_SIGNAL_TEXT).signal
    token = encode_signal(sig)

    assert "=" not in token
    padded = token + "=" * (-len(token) % 4)
    assert base64.urlsafe_b64decode(padded).decode() == "SOLUSDT|L|142.4|145,148|141.6|10"


def test_encode_without_leverage():
    sig = TradeSignal(
        symbol="ETHUSDT",
        side=Side.SHORT,
        entry_price=3500.0,
        take_profits=(3400.0,),
        stop_loss=3600.0,
    )
    decoded = decode_signal(encode_signal(sig))

    assert decoded.side is Side.SHORT
    assert decoded.leverage is None


def test_decode_five_part_payload():
    decoded = decode_signal(_token("BTCUSDT|L|95000|96000|94000"))
    assert decoded.take_profits == (96000.0,)
    assert decoded.leverage is None


@pytest.mark.parametrize(
    "token",
    [
        "!!!not-base64!!!",
        _token("BTCUSDT|L|95000"),
        _token("BTCUSDT|L|95000||94000|10"),
        _token("BTCUSDT|L|soon|96000|94000|10"),
        _token("BTCUSDT|L|95000|abc|94000|10"),
        base64.urlsafe_b64encode(b"\xff\xfe\xfa" * 10).decode(),
    ],
)
def test_decode_malformed_returns_none(token):
    assert decode_signal(token) is None


def test_is_encoded_signal():
    sig = parse_signal(SOL_SIGNAL_TEXT).signal
    assert is_encoded_signal(encode_signal(sig))
    assert not is_encoded_signal("ref")
    assert not is_encoded_signal("")
    assert not is_encoded_signal(None)
    assert not is_encoded_signal("has spaces and is long enough")


def test_generate_deeplink():
    sig = parse_signal(SOL_SIGNAL_TEXT).signal
    link = generate_deeplink("@SignalsTradeBot", sig)

    assert link.startswith("https://t.me/SignalsTradeBot?start=")
    assert link.endswith(encode_signal(sig))


def test_decode_orders_targets_nearest_first():
    assert decode_signal(_token("SOLUSDT|L|100|120,110|90|10")).take_profits == (110.0, 120.0)
    assert decode_signal(_token("ETHUSDT|S|3500|3300,3400,3400|3600|10")).take_profits == (3400.0, 3300.0)


@pytest.mark.parametrize(
    "payload",
    [
        "SOLUSDT|L|-100|120|-90|10",
        "SOLUSDT|L|0|120|90|10",
        "SOLUSDT|L|100|120,-5|90|10",
        "SOLUSDT|L|100|120|0|10",
        "SOLUSDT|X|100|120|90|10",
    ],
)
def test_decode_rejects_non_positive_prices_and_unknown_side(payload):
    assert decode_signal(_token(payload)) is None
