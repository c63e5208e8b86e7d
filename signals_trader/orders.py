import logging
import secrets
import time

from .models import OrderRequest, OrderType, SizingConfig, TradeSignal
from .utils import format_number

log = logging.getLogger(__name__)

QTY_DECIMALS = 8


class InvalidSignalError(ValueError):
    """Сигнал распарсен, но по нему нельзя строить ордер (цены не с той стороны и т.п.)."""

    def __init__(self, problems: list[str]) -> None:
        super().__init__("; ".join(problems))
        self.problems = problems


def validate_signal(sig: TradeSignal) -> list[str]:
    problems = []
    if sig.entry_price <= 0 or sig.stop_loss <= 0 or not sig.take_profits or any(tp <= 0 for tp in sig.take_profits):
        problems.append("prices must be positive")
        return problems

    tp = sig.first_target
    if sig.is_short:
        if sig.stop_loss <= sig.entry_price:
            problems.append("stop loss must be above entry for SHORT")
        if tp >= sig.entry_price:
            problems.append("take profit must be below entry for SHORT")
    else:
        if sig.stop_loss >= sig.entry_price:
            problems.append("stop loss must be below entry for LONG")
        if tp <= sig.entry_price:
            problems.append("take profit must be above entry for LONG")
    return problems


def resolve_sizing(sig: TradeSignal, sizing: SizingConfig) -> tuple[float, int]:
    # разовый оверрайд → из сигнала → пользовательский → глобальный
    position_size = (
        sizing.position_size
        or sig.position_size
        or sizing.user_position_size
        or sizing.default_position_size
    )
    leverage = sizing.leverage or sig.leverage or sizing.user_leverage or sizing.default_leverage
    return float(position_size), int(leverage)


def calculate_quantity(position_size: float, entry_price: float, leverage: int) -> str:
    qty = (position_size * leverage) / entry_price
    return f"{qty:.{QTY_DECIMALS}f}"


def generate_client_id() -> str:
    return f"tg_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def build_order(sig: TradeSignal, sizing: SizingConfig) -> OrderRequest:
    problems = validate_signal(sig)
    if problems:
        raise InvalidSignalError(problems)

    position_size, leverage = resolve_sizing(sig, sizing)
    market = sizing.use_market_order

    order = OrderRequest(
        symbol=sig.symbol,
        side="SELL" if sig.is_short else "BUY",
        order_type=OrderType.MARKET if market else OrderType.LIMIT,
        qty=calculate_quantity(position_size, sig.entry_price, leverage),
        client_id=generate_client_id(),
        # на биржу уходит только ближайшая цель
        tp_price=format_number(sig.first_target),
        sl_price=format_number(sig.stop_loss),
        price=None if market else format_number(sig.entry_price),
        effect=None if market else "GTC",
    )
    log.debug(
        "[ORDER] %s %s %s qty=%s size=%s lev=x%s",
        order.symbol, order.side, order.order_type.value, order.qty, position_size, leverage,
    )
    return order
