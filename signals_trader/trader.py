import logging

from .broker.base import BrokerBase
from .models import SizingConfig, TradeResult, TradeSignal
from .orders import InvalidSignalError, build_order
from .utils import format_number

log = logging.getLogger(__name__)


async def execute_trade(broker: BrokerBase, sig: TradeSignal, sizing: SizingConfig) -> TradeResult:
    """Строит ордер и отправляет на биржу. Любая ошибка → TradeResult(success=False)."""
    try:
        order = build_order(sig, sizing)
    except InvalidSignalError as e:
        log.warning("[TRADE] %s rejected: %s", sig.symbol, e)
        return TradeResult(success=False, signal=sig, error=f"Invalid signal: {e}")

    log.info(
        "[BROKER] %s %s %s qty=%s price=%s tp=%s sl=%s cid=%s",
        order.symbol,
        order.side,
        order.order_type.value,
        order.qty,
        order.price or "MARKET",
        order.tp_price,
        order.sl_price,
        order.client_id,
    )

    try:
        res = await broker.place_order(order)
    except Exception as e:
        log.error("[TRADE] broker error: %s", e)
        return TradeResult(success=False, signal=sig, error=str(e) or "Unknown error")

    res = res or {}
    if res.get("code") == 0:
        order_id = (res.get("data") or {}).get("orderId")
        log.info("[TRADE] order accepted: %s", order_id)
        return TradeResult(success=True, signal=sig, order_id=str(order_id) if order_id is not None else None)

    error = res.get("msg") or "Unknown error"
    log.error("[TRADE] order failed: %s", error)
    return TradeResult(success=False, signal=sig, error=error)


def format_trade_result(result: TradeResult) -> str:
    sig = result.signal
    when = result.executed_at.strftime("%Y-%m-%d %H:%M:%S UTC")
    if result.success:
        return "\n".join([
            "✅ Trade Executed Successfully!",
            "",
            f"📋 Order ID: {result.order_id}",
            f"🪙 Symbol: {sig.symbol}",
            f"📊 Side: {sig.side.value}",
            f"📍 Entry: {format_number(sig.entry_price)}",
            f"🎯 TP: {format_number(sig.first_target)}",
            f"🛑 SL: {format_number(sig.stop_loss)}",
            f"⏰ Time: {when}",
        ])
    return "\n".join([
        "❌ Trade Failed",
        "",
        f"🪙 Symbol: {sig.symbol}",
        f"❗ Error: {result.error}",
        f"⏰ Time: {when}",
    ])
