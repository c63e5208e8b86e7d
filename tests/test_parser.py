# file: tests/test_parser.py
import pytest

from signals_trader.models import ParseFailure, ParseSuccess, Side
from signals_trader.parser import (
    extract_generic_takes,
    extract_header,
    extract_leverage_line,
    extract_take_line,
    format_signal,
    normalize_symbol,
    parse_signal,
)
from tests.samples import BTC_SIGNAL_TEXT, ETH_GENERIC_TEXT, SOL_SIGNAL_TEXT


def test_parse_btc_structured_signal():
    """Размеченный формат с разделителями тысяч и хвостом '/ Current Price'."""
    result = parse_signal(BTC_SIGNAL_TEXT)

    assert isinstance(result, ParseSuccess)
    assert result.tier == "structured"
    sig = result.signal
    assert sig.symbol == "BTCUSDT"
    assert sig.side is Side.LONG
    assert sig.entry_price == 95093.0
    assert sig.stop_loss == 94861.68
    assert sig.take_profits == (96117.71,)
    assert sig.leverage == 10
    assert sig.raw == BTC_SIGNAL_TEXT


def test_parse_sol_range_take_profit():
    result = parse_signal(SOL_SIGNAL_TEXT)

    assert result.ok
    sig = result.signal
    assert sig.symbol == "SOLUSDT"
    assert sig.entry_price == 142.4
    assert sig.stop_loss == 141.6
    assert sig.take_profits == (145.0, 148.0)
    assert sig.leverage == 10


def test_parse_structured_short_sorts_targets_descending():
    text = "ETH SHORT\nEntry: 3500\nStop Loss: 3600\nTake Profit: 3300-3400"
    sig = parse_signal(text).signal

    assert sig.side is Side.SHORT
    assert sig.take_profits == (3400.0, 3300.0)


def test_parse_structured_lines_are_order_independent():
    text = "avax long\nTake Profit: 14.23\nStop Loss: 13.40\nEntry: 13.6"
    result = parse_signal(text)

    assert result.ok and result.tier == "structured"
    assert result.signal.symbol == "AVAXUSDT"
    assert result.signal.entry_price == 13.6
    assert result.signal.leverage is None


def test_parse_generic_comma_separated_targets():
    """Свободный формат: несколько целей через запятую после одной метки."""
    result = parse_signal(ETH_GENERIC_TEXT)

    assert isinstance(result, ParseSuccess)
    assert result.tier == "generic"
    sig = result.signal
    assert sig.symbol == "ETHUSDT"
    assert sig.side is Side.SHORT
    assert sig.entry_price == 3500.0
    assert sig.take_profits == (3400.0, 3300.0)
    assert sig.stop_loss == 3600.0


def test_parse_generic_indexed_targets_and_full_symbol():
    text = "BTCUSDT Long Entry: 95000 TP2: 97000 TP1: 96000 SL: 94000"
    result = parse_signal(text)

    assert result.tier == "generic"
    assert result.signal.symbol == "BTCUSDT"
    assert result.signal.take_profits == (96000.0, 97000.0)
    assert result.signal.stop_loss == 94000.0


def test_parse_generic_deduplicates_targets():
    sig = parse_signal("BTC LONG entry 100 tp 110 tp1 110 target 120 sl 90").signal
    assert sig.take_profits == (110.0, 120.0)


def test_parse_generic_buy_sell_synonyms():
    sig = parse_signal("SOLUSDT SELL entry: 150 target: 140 stop: 160").signal

    assert sig.symbol == "SOLUSDT"
    assert sig.side is Side.SHORT
    assert sig.stop_loss == 160.0

    sig = parse_signal("DOGE buy @ 0.15 tp 0.18 sl 0.13").signal
    assert sig.side is Side.LONG
    assert sig.entry_price == 0.15


def test_parse_generic_emoji_header_and_slash_targets():
    text = "🚀 AVAX long\nentry 13.6\ntp 14.8 / 14.2\nsl 13.4"
    sig = parse_signal(text).signal

    assert sig.symbol == "AVAXUSDT"
    assert sig.take_profits == (14.2, 14.8)


def test_parse_generic_leverage_range_takes_lower_bound():
    sig = parse_signal("ETH SHORT @ 3500 TP 3400 SL 3600 lev 20-50x").signal
    assert sig.leverage == 20


def test_parse_no_side_returns_failure():
    result = parse_signal("BTC entry 100 tp 110 sl 90")

    assert isinstance(result, ParseFailure)
    assert not result.ok
    assert "symbol/side" in result.missing


def test_parse_zero_entry_treated_as_absent():
    result = parse_signal("BTC LONG\nEntry: 0\nStop Loss: 90\nTake Profit: 110")

    assert isinstance(result, ParseFailure)
    assert result.missing == ("entry",)


@pytest.mark.parametrize("text", ["", "   ", None, "gm everyone", "BTC LONG\nEntry: soon"])
def test_parse_garbage_never_raises(text):
    assert parse_signal(text).ok is False


@pytest.mark.parametrize(
    "text",
    [
        SOL_SIGNAL_TEXT,
        "SOL LONG\nEntry: 142\nStop Loss: 140\nTake Profit: 148-145",
        "ETH SHORT\nEntry: 3500\nStop Loss: 3600\nTake Profit: 3300-3400",
        "BTC LONG entry 100 target 130 tp 110 tp 120 sl 90",
        "BTC SHORT entry 100 tp 80, 95, 90 sl 110",
    ],
)
def test_take_profits_ordered_favorably_from_entry(text):
    sig = parse_signal(text).signal
    tps = list(sig.take_profits)
    assert tps == sorted(tps, reverse=sig.side is Side.SHORT)


def test_extract_header():
    assert extract_header("SOL LONG SCALP") == ("SOLUSDT", Side.LONG)
    assert extract_header("btcusdt short") == ("BTCUSDT", Side.SHORT)
    assert extract_header("Signal of the day") is None


def test_extract_leverage_line():
    assert extract_leverage_line("Leverage: 10-25x") == 10
    assert extract_leverage_line("Leverage: x20") == 20
    assert extract_leverage_line("Leverage: cross") is None
    assert extract_leverage_line(None) is None


def test_extract_take_line():
    assert extract_take_line("Take Profit: 145-148") == [145.0, 148.0]
    assert extract_take_line("Take Profit: 96,117.71") == [96117.71]
    assert extract_take_line("Take Profit: soon") == []


def test_extract_generic_takes_thousands():
    assert extract_generic_takes("TP: 96,000, 97,500.5 SL 94000") == [96000.0, 97500.5]


@pytest.mark.parametrize(
    "raw,expected",
    [("btc", "BTCUSDT"), ("ETHUSDT", "ETHUSDT"), ("BTCPERP", "BTCUSDT"), ("ETHUSD", "ETHUSDT")],
)
def test_normalize_symbol(raw, expected):
    assert normalize_symbol(raw) == expected


def test_format_signal():
    text = format_signal(parse_signal(SOL_SIGNAL_TEXT).signal)

    assert "SOLUSDT LONG" in text
    assert "Entry: 142.4" in text
    assert "TP1: 145 | TP2: 148" in text
    assert "SL: 141.6" in text
    assert "Leverage: 10x" in text
