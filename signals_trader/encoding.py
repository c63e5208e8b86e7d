# signals_trader/encoding.py
"""
Компактный токен сигнала для Telegram deeplink (/start <token>).

Формат полезной нагрузки: symbol|L|entry|tp1,tp2,...|sl|leverage
  SOLUSDT|L|142.4|145,148|141.6|10 → base64url без паддинга
"""
from __future__ import annotations

import base64
import binascii
import logging
import re

from .models import Side, TradeSignal
from .utils import format_number, parse_number

log = logging.getLogger(__name__)

DEEPLINK_RAW = "[Decoded from deeplink]"
RE_TOKEN = re.compile(r"^[A-Za-z0-9_-]{20,}$")


def encode_signal(sig: TradeSignal) -> str:
    parts = [
        sig.symbol,
        "S" if sig.is_short else "L",
        format_number(sig.entry_price),
        ",".join(format_number(tp) for tp in sig.take_profits),
        format_number(sig.stop_loss),
        str(sig.leverage) if sig.leverage else "",
    ]
    payload = "|".join(parts).encode("utf-8")
    return base64.urlsafe_b64encode(payload).decode("ascii").rstrip("=")


def decode_signal(token: str) -> TradeSignal | None:
    try:
        padded = token + "=" * (-len(token) % 4)
        payload = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as e:
        log.warning("[DEEPLINK] undecodable token: %s", e)
        return None

    parts = payload.split("|")
    if len(parts) < 5:
        log.warning("[DEEPLINK] not enough parts: %d", len(parts))
        return None

    symbol, side, entry, tps, sl = parts[:5]
    leverage = parts[5] if len(parts) > 5 else ""
    if not (symbol and side and entry and tps and sl):
        log.warning("[DEEPLINK] missing required fields")
        return None
    if side not in ("L", "S"):
        log.warning("[DEEPLINK] unknown side: %r", side)
        return None

    takes = [v for v in (parse_number(t) for t in tps.split(",")) if v is not None]
    if not takes or any(tp <= 0 for tp in takes):
        log.warning("[DEEPLINK] no valid take profits")
        return None

    entry_price = parse_number(entry)
    stop_loss = parse_number(sl)
    if entry_price is None or stop_loss is None or entry_price <= 0 or stop_loss <= 0:
        log.warning("[DEEPLINK] invalid entry or stop loss")
        return None

    # ближайшая цель первой, как у парсера
    is_short = side == "S"
    takes = sorted(dict.fromkeys(takes), reverse=is_short)
    return TradeSignal(
        symbol=symbol,
        side=Side.SHORT if is_short else Side.LONG,
        entry_price=entry_price,
        take_profits=tuple(takes),
        stop_loss=stop_loss,
        leverage=int(leverage) if leverage.isdigit() and int(leverage) > 0 else None,
        raw=DEEPLINK_RAW,
    )


def generate_deeplink(bot_username: str, sig: TradeSignal) -> str:
    return f"https://t.me/{bot_username.lstrip('@')}?start={encode_signal(sig)}"


def is_encoded_signal(start_param: str | None) -> bool:
    # обычные /start-параметры короткие; токены сигналов длинные, base64url
    return bool(start_param) and bool(RE_TOKEN.match(start_param))
