# signals_trader/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union


class Side(Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class OrderType(Enum):
    LIMIT = "LIMIT"
    MARKET = "MARKET"


@dataclass(frozen=True, slots=True)
class TradeSignal:
    symbol: str                       # например, "SOLUSDT"
    side: Side                        # LONG/SHORT
    entry_price: float
    take_profits: tuple[float, ...]   # ближайшая цель первой
    stop_loss: float
    leverage: int | None = None
    position_size: float | None = None  # в USDT
    raw: str = ""

    @property
    def is_short(self) -> bool:
        return self.side is Side.SHORT

    @property
    def first_target(self) -> float:
        return self.take_profits[0]


@dataclass(frozen=True, slots=True)
class ParseSuccess:
    signal: TradeSignal
    tier: str  # "structured" | "generic"

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class ParseFailure:
    reason: str
    missing: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return False


ParseResult = Union[ParseSuccess, ParseFailure]


@dataclass(frozen=True, slots=True)
class UserDefaults:
    leverage: int | None = None
    position_size: float | None = None


@dataclass(frozen=True, slots=True)
class SizingConfig:
    """Параметры размера позиции: глобальные дефолты, пользовательские и разовые оверрайды."""

    default_position_size: float
    default_leverage: int
    user_position_size: float | None = None
    user_leverage: int | None = None
    position_size: float | None = None
    leverage: int | None = None
    use_market_order: bool = False


@dataclass(frozen=True, slots=True)
class OrderRequest:
    symbol: str
    side: str            # "BUY" / "SELL"
    order_type: OrderType
    qty: str
    client_id: str
    tp_price: str
    sl_price: str
    price: Optional[str] = None
    effect: Optional[str] = None
    trade_side: str = "OPEN"
    tp_stop_type: str = "MARK"
    tp_order_type: str = "MARKET"
    sl_stop_type: str = "MARK"
    sl_order_type: str = "MARKET"

    def to_payload(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "symbol": self.symbol,
            "side": self.side,
            "orderType": self.order_type.value,
            "qty": self.qty,
            "tradeSide": self.trade_side,
            "clientId": self.client_id,
            "tpPrice": self.tp_price,
            "tpStopType": self.tp_stop_type,
            "tpOrderType": self.tp_order_type,
            "slPrice": self.sl_price,
            "slStopType": self.sl_stop_type,
            "slOrderType": self.sl_order_type,
        }
        if self.price is not None:
            body["price"] = self.price
        if self.effect is not None:
            body["effect"] = self.effect
        return body


@dataclass(frozen=True, slots=True)
class TradeResult:
    success: bool
    signal: TradeSignal
    order_id: str | None = None
    error: str | None = None
    executed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
