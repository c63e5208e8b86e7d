# signals_trader/orchestrator.py
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Protocol, Set, Union

from .broker.base import BrokerBase
from .models import SizingConfig, TradeResult, TradeSignal, UserDefaults
from .orders import resolve_sizing, validate_signal
from .risk import risk_reward
from .trader import execute_trade

log = logging.getLogger(__name__)


class Decision(Enum):
    LIMIT = "execute_limit"
    MARKET = "execute_market"
    CANCEL = "cancel"


class RequesterState(Enum):
    IDLE = "idle"
    SIGNAL_PENDING = "signal_pending"
    EXECUTING = "executing"


@dataclass(frozen=True)
class AwaitingConfirmation:
    signal: TradeSignal
    risk_reward: float
    position_size: float
    leverage: int


@dataclass(frozen=True)
class PriceWarning:
    """Лимитка исполнилась бы сразу по рынку: сигнал остаётся в ожидании выбора."""

    signal: TradeSignal
    current_price: float


@dataclass(frozen=True)
class Cancelled:
    signal: TradeSignal


@dataclass(frozen=True)
class NoPendingSignal:
    requester_id: int


Outcome = Union[AwaitingConfirmation, PriceWarning, Cancelled, NoPendingSignal, TradeResult]


class DefaultsProvider(Protocol):
    def get_defaults(self, user_id: int) -> Optional[UserDefaults]:
        ...


BrokerFactory = Callable[[int], Optional[BrokerBase]]


def limit_would_fill_immediately(sig: TradeSignal, current_price: float) -> bool:
    if sig.is_short:
        return current_price >= sig.entry_price
    return current_price <= sig.entry_price


class TradeOrchestrator:
    """
    Подтверждение сделок по каждому пользователю отдельно:
    IDLE → SIGNAL_PENDING → (EXECUTING → IDLE | IDLE по отмене | новый сигнал заменяет старый).
    Одна заявка в полёте на пользователя; разные пользователи друг друга не ждут.
    Ошибки брокера не выходят наружу: результат всегда значение.
    """

    def __init__(
        self,
        broker_factory: BrokerFactory,
        defaults_provider: Optional[DefaultsProvider] = None,
        *,
        default_position_size: float = 100.0,
        default_leverage: int = 10,
        auto_execute: bool = False,
        price_timeout_sec: float = 5.0,
    ) -> None:
        self.broker_factory = broker_factory
        self.defaults_provider = defaults_provider
        self.default_position_size = default_position_size
        self.default_leverage = default_leverage
        self.auto_execute = auto_execute
        self.price_timeout_sec = price_timeout_sec

        self._pending: Dict[int, TradeSignal] = {}
        self._locks: Dict[int, asyncio.Lock] = {}
        self._lock_users: Dict[int, int] = {}
        self._executing: Set[int] = set()

    # ---------- state ----------

    def state(self, requester_id: int) -> RequesterState:
        if requester_id in self._executing:
            return RequesterState.EXECUTING
        if requester_id in self._pending:
            return RequesterState.SIGNAL_PENDING
        return RequesterState.IDLE

    def pending(self, requester_id: int) -> Optional[TradeSignal]:
        return self._pending.get(requester_id)

    def sizing_for(self, requester_id: int, *, market: bool = False) -> SizingConfig:
        defaults = self.defaults_provider.get_defaults(requester_id) if self.defaults_provider else None
        return SizingConfig(
            default_position_size=self.default_position_size,
            default_leverage=self.default_leverage,
            user_position_size=defaults.position_size if defaults else None,
            user_leverage=defaults.leverage if defaults else None,
            use_market_order=market,
        )

    # ---------- transitions ----------

    async def submit_signal(self, requester_id: int, sig: TradeSignal) -> Outcome:
        previous = self._pending.get(requester_id)
        self._pending[requester_id] = sig
        if previous is not None:
            log.info("[ORCH] user=%s pending %s replaced by %s", requester_id, previous.symbol, sig.symbol)
        log.info(
            "[ORCH] user=%s pending %s %s entry=%s sl=%s tp=%s lev=%s",
            requester_id, sig.symbol, sig.side.value, sig.entry_price, sig.stop_loss,
            list(sig.take_profits), sig.leverage or "x?",
        )

        if self.auto_execute:
            log.info("[ORCH] user=%s auto-execute", requester_id)
            return await self.confirm(requester_id, Decision.LIMIT)

        position_size, leverage = resolve_sizing(sig, self.sizing_for(requester_id))
        return AwaitingConfirmation(sig, risk_reward(sig), position_size, leverage)

    async def confirm(self, requester_id: int, decision: Decision) -> Outcome:
        if decision is Decision.CANCEL:
            sig = self._pending.pop(requester_id, None)
            if sig is None:
                return NoPendingSignal(requester_id)
            log.info("[ORCH] user=%s cancelled %s", requester_id, sig.symbol)
            return Cancelled(sig)

        lock = self._locks.setdefault(requester_id, asyncio.Lock())
        self._lock_users[requester_id] = self._lock_users.get(requester_id, 0) + 1
        try:
            async with lock:
                return await self._confirm_locked(requester_id, decision)
        finally:
            # лок живёт, пока его кто-то держит или ждёт
            self._lock_users[requester_id] -= 1
            if not self._lock_users[requester_id]:
                del self._lock_users[requester_id]
                self._locks.pop(requester_id, None)

    async def _confirm_locked(self, requester_id: int, decision: Decision) -> Outcome:
        sig = self._pending.get(requester_id)
        if sig is None:
            return NoPendingSignal(requester_id)

        broker = self.broker_factory(requester_id)
        if broker is None:
            self._pending.pop(requester_id, None)
            return TradeResult(success=False, signal=sig, error="No exchange API keys registered")

        try:
            if decision is Decision.LIMIT:
                price = await self._current_price(broker, sig.symbol)
                if price is not None and limit_would_fill_immediately(sig, price):
                    log.info(
                        "[ORCH] user=%s %s limit would fill now: price=%s entry=%s",
                        requester_id, sig.symbol, price, sig.entry_price,
                    )
                    return PriceWarning(sig, price)

            if self._pending.get(requester_id) is sig:
                del self._pending[requester_id]
            self._executing.add(requester_id)
            try:
                return await self._execute(requester_id, broker, sig, market=decision is Decision.MARKET)
            finally:
                self._executing.discard(requester_id)
        finally:
            await self._close(broker)

    # ---------- core ----------

    async def _current_price(self, broker: BrokerBase, symbol: str) -> Optional[float]:
        # недоступная цена не блокирует заявку
        try:
            price = await asyncio.wait_for(broker.get_ticker_price(symbol), timeout=self.price_timeout_sec)
        except asyncio.TimeoutError:
            log.warning("[ORCH] price check for %s timed out, skipping guard", symbol)
            return None
        except Exception as e:
            log.warning("[ORCH] price check for %s failed: %s", symbol, e)
            return None
        if price is None or price <= 0:
            log.warning("[ORCH] price for %s unavailable, skipping guard", symbol)
            return None
        return price

    async def _execute(self, requester_id: int, broker: BrokerBase, sig: TradeSignal, *, market: bool) -> TradeResult:
        sizing = self.sizing_for(requester_id, market=market)

        # подготовка аккаунта (best-effort)
        if not validate_signal(sig):
            _, leverage = resolve_sizing(sig, sizing)
            try:
                res = await broker.set_leverage(sig.symbol, leverage)
                if (res or {}).get("code") not in (0, None):
                    log.warning("[ORCH] set_leverage %s x%s rejected: %s", sig.symbol, leverage, res.get("msg"))
            except Exception as e:
                log.warning("[ORCH] set_leverage %s failed: %s", sig.symbol, e)

        result = await execute_trade(broker, sig, sizing)
        log.info(
            "[ORCH] user=%s %s %s: %s",
            requester_id, sig.symbol, "MARKET" if market else "LIMIT",
            f"ok {result.order_id}" if result.success else f"failed {result.error}",
        )
        return result

    @staticmethod
    async def _close(broker: BrokerBase) -> None:
        try:
            await broker.aclose()
        except Exception as e:
            log.warning("[ORCH] broker close failed: %s", e)
