# file: tests/test_trader.py
import pytest

from signals_trader.models import Side, SizingConfig, TradeResult, TradeSignal
from signals_trader.trader import execute_trade, format_trade_result

SIZING = SizingConfig(default_position_size=100.0, default_leverage=10)


@pytest.mark.asyncio
async def test_execute_trade_success(mock_broker, long_signal):
    result = await execute_trade(mock_broker, long_signal, SIZING)

    assert result.success
    assert result.order_id == "123"
    assert result.error is None
    mock_broker.place_order.assert_awaited_once()
    order = mock_broker.place_order.await_args.args[0]
    assert order.symbol == "SOLUSDT"
    assert order.qty == "10.00000000"


@pytest.mark.asyncio
async def test_execute_trade_exchange_rejects(mock_broker, long_signal):
    mock_broker.place_order.return_value = {"code": 20003, "msg": "Insufficient balance", "data": None}

    result = await execute_trade(mock_broker, long_signal, SIZING)

    assert not result.success
    assert result.error == "Insufficient balance"
    assert result.order_id is None


@pytest.mark.asyncio
async def test_execute_trade_reject_without_message(mock_broker, long_signal):
    mock_broker.place_order.return_value = {"code": 1}

    result = await execute_trade(mock_broker, long_signal, SIZING)
    assert result.error == "Unknown error"


@pytest.mark.asyncio
async def test_execute_trade_transport_error(mock_broker, long_signal):
    """Ошибка сети не вылетает наружу: возвращается неуспешный результат."""
    mock_broker.place_order.side_effect = RuntimeError("connection reset")

    result = await execute_trade(mock_broker, long_signal, SIZING)

    assert not result.success
    assert result.error == "connection reset"


@pytest.mark.asyncio
async def test_execute_trade_empty_exception_message(mock_broker, long_signal):
    mock_broker.place_order.side_effect = RuntimeError()

    result = await execute_trade(mock_broker, long_signal, SIZING)
    assert result.error == "Unknown error"


@pytest.mark.asyncio
async def test_execute_trade_invalid_signal_skips_broker(mock_broker):
    sig = TradeSignal(symbol="BTCUSDT", side=Side.LONG, entry_price=100.0, take_profits=(110.0,), stop_loss=105.0)

    result = await execute_trade(mock_broker, sig, SIZING)

    assert not result.success
    assert result.error.startswith("Invalid signal:")
    assert "stop loss must be below entry for LONG" in result.error
    mock_broker.place_order.assert_not_awaited()


def test_format_trade_result(long_signal):
    ok = format_trade_result(TradeResult(success=True, signal=long_signal, order_id="987"))
    assert ok.startswith("✅ Trade Executed Successfully!")
    assert "Order ID: 987" in ok
    assert "TP: 110" in ok
    assert "UTC" in ok

    failed = format_trade_result(TradeResult(success=False, signal=long_signal, error="Insufficient balance"))
    assert failed.startswith("❌ Trade Failed")
    assert "Error: Insufficient balance" in failed
