# signals_trader/broker/base.py
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..models import OrderRequest

JSON = Dict[str, Any]


class BrokerError(RuntimeError):
    """Сеть/транспорт: ответа биржи нет вообще."""


class BrokerBase(ABC):
    @abstractmethod
    async def place_order(self, order: OrderRequest) -> JSON:
        """Ответ биржи как есть: {"code": 0, "msg": ..., "data": {"orderId": ...}}."""

    @abstractmethod
    async def get_ticker_price(self, symbol: str) -> Optional[float]:
        """Последняя цена или None, если цена недоступна."""

    @abstractmethod
    async def get_balance(self) -> JSON:
        ...

    async def set_leverage(self, symbol: str, leverage: int) -> JSON:
        return {"code": 0, "msg": "not supported", "data": None}

    async def aclose(self) -> None:
        return None
