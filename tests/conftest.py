# file: tests/conftest.py
import pytest
from unittest.mock import AsyncMock

from cryptography.fernet import Fernet

from signals_trader.broker.base import BrokerBase
from signals_trader.models import Side, TradeSignal
from signals_trader.user_store import UserRecord, UserStore


@pytest.fixture
def long_signal():
    return TradeSignal(
        symbol="SOLUSDT",
        side=Side.LONG,
        entry_price=100.0,
        take_profits=(110.0, 120.0),
        stop_loss=90.0,
        leverage=None,
        raw="SOL LONG ...",
    )


@pytest.fixture
def short_signal():
    return TradeSignal(
        symbol="ETHUSDT",
        side=Side.SHORT,
        entry_price=3500.0,
        take_profits=(3400.0, 3300.0),
        stop_loss=3600.0,
        leverage=20,
        raw="ETH SHORT ...",
    )


@pytest.fixture
def mock_broker():
    """Мок клиента биржи: заявка принимается, цена по умолчанию недоступна."""
    broker = AsyncMock(spec=BrokerBase)
    broker.place_order.return_value = {"code": 0, "msg": "Success", "data": {"orderId": "123", "clientId": "tg_1"}}
    broker.get_ticker_price.return_value = None
    broker.set_leverage.return_value = {"code": 0, "msg": "Success", "data": None}
    broker.get_balance.return_value = {"code": 0, "msg": "Success", "data": {"available": "1000"}}
    return broker


@pytest.fixture
def encryption_key():
    return Fernet.generate_key().decode()


@pytest.fixture
def store(tmp_path, encryption_key):
    return UserStore(tmp_path / "users.json", encryption_key)


@pytest.fixture
def registered_store(store):
    store.save_user(UserRecord(
        user_id=42,
        username="trader",
        api_key="key-1234567890",
        api_secret="secret-1234567890",
        default_leverage=5,
        default_position_size=50.0,
        registered_at=1_700_000_000.0,
    ))
    return store
