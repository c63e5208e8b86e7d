# signals_trader/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from dotenv import load_dotenv


def _to_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def _to_int(value: str | None, default: int) -> int:
    try:
        return int(str(value).strip())
    except Exception:
        return default


def _to_float(value: str | None, default: float) -> float:
    try:
        return float(str(value).strip().replace(",", "."))
    except Exception:
        return default


def _to_id_list(value: str | None) -> tuple[int, ...]:
    if not value:
        return ()
    ids = []
    for part in value.split(","):
        part = part.strip()
        if part.lstrip("-").isdigit():
            ids.append(int(part))
    return tuple(ids)


@dataclass(frozen=True)
class Config:
    # --- Telegram ---
    BOT_TOKEN: str
    BOT_USERNAME: str
    ADMIN_USER_IDS: tuple[int, ...]
    TELEGRAM_POLL_INTERVAL: float
    TELEGRAM_DROP_PENDING: bool

    # --- Logging ---
    LOG_LEVEL: str
    LOG_HTTP_VERBOSE: bool
    LOG_SNIPPET_LEN: int

    # --- Trading defaults ---
    DEFAULT_LEVERAGE: int
    DEFAULT_POSITION_SIZE_USDT: float
    ENABLE_AUTO_EXECUTE: bool
    PRICE_CHECK_TIMEOUT_SEC: float

    # --- Bitunix ---
    BITUNIX_BASE_URL: str
    BITUNIX_TIMEOUT_SEC: float

    # --- Storage ---
    ENCRYPTION_KEY: str
    USER_STORE_PATH: str

    # --- Helpers ---
    def is_ready(self) -> bool:
        return bool(self.BOT_TOKEN and self.BOT_USERNAME and self.ENCRYPTION_KEY)

    def is_admin(self, user_id: int | None) -> bool:
        return user_id is not None and user_id in self.ADMIN_USER_IDS

    @property
    def TELEGRAM_ALLOWED_UPDATES(self) -> list[str]:
        return ["message", "callback_query"]


def load_config() -> Config:
    load_dotenv()

    # Telegram
    bot_token = (os.getenv("BOT_TOKEN") or os.getenv("TELEGRAM_BOT_TOKEN") or "").strip()
    bot_username = (os.getenv("BOT_USERNAME") or "").strip().lstrip("@")
    admin_ids = _to_id_list(os.getenv("ADMIN_USER_IDS"))
    poll_interval = _to_float(os.getenv("TELEGRAM_POLL_INTERVAL"), 1.5)
    drop_pending = _to_bool(os.getenv("TELEGRAM_DROP_PENDING"), True)

    # Logging
    log_level = (os.getenv("LOG_LEVEL") or "INFO").upper()
    log_http = _to_bool(os.getenv("LOG_HTTP_VERBOSE"), False)
    snippet_len = _to_int(os.getenv("LOG_SNIPPET_LEN"), 40)

    # Trading
    default_leverage = _to_int(os.getenv("DEFAULT_LEVERAGE"), 10)
    default_size = _to_float(os.getenv("DEFAULT_POSITION_SIZE_USDT"), 100.0)
    auto_execute = _to_bool(os.getenv("ENABLE_AUTO_EXECUTE"), False)
    price_timeout = _to_float(os.getenv("PRICE_CHECK_TIMEOUT_SEC"), 5.0)

    # Bitunix
    base_url = (os.getenv("BITUNIX_BASE_URL") or "https://fapi.bitunix.com").rstrip("/")
    timeout_sec = _to_float(os.getenv("BITUNIX_TIMEOUT_SEC"), 10.0)

    # Storage
    encryption_key = (os.getenv("ENCRYPTION_KEY") or "").strip()
    store_path = (os.getenv("USER_STORE_PATH") or os.path.join("data", "users.json")).strip()

    return Config(
        BOT_TOKEN=bot_token,
        BOT_USERNAME=bot_username,
        ADMIN_USER_IDS=admin_ids,
        TELEGRAM_POLL_INTERVAL=poll_interval,
        TELEGRAM_DROP_PENDING=drop_pending,
        LOG_LEVEL=log_level,
        LOG_HTTP_VERBOSE=log_http,
        LOG_SNIPPET_LEN=snippet_len,
        DEFAULT_LEVERAGE=default_leverage,
        DEFAULT_POSITION_SIZE_USDT=default_size,
        ENABLE_AUTO_EXECUTE=auto_execute,
        PRICE_CHECK_TIMEOUT_SEC=price_timeout,
        BITUNIX_BASE_URL=base_url,
        BITUNIX_TIMEOUT_SEC=timeout_sec,
        ENCRYPTION_KEY=encryption_key,
        USER_STORE_PATH=store_path,
    )
