import asyncio
import json
import logging
import time
from typing import Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.constants import ChatType
from telegram.ext import ContextTypes

from .config import Config
from .encoding import decode_signal, generate_deeplink, is_encoded_signal
from .models import TradeResult
from .orchestrator import (
    AwaitingConfirmation,
    Cancelled,
    Decision,
    NoPendingSignal,
    Outcome,
    PriceWarning,
    TradeOrchestrator,
)
from .parser import format_signal, parse_signal
from .risk import format_risk_reward, risk_reward
from .trader import format_trade_result
from .user_store import UserRecord, UserStore
from .utils import first_line, format_number

log = logging.getLogger(__name__)

AWAITING_API_KEY = "awaiting_api_key"
AWAITING_API_SECRET = "awaiting_api_secret"

MAX_LEVERAGE = 125
MIN_POSITION_SIZE = 1.0
MAX_POSITION_SIZE = 100_000.0

HELP_TEXT = """📚 Bitunix Trade Bot Help

For traders:
1. Use /register to set up your Bitunix API keys (one-time)
2. In trading groups, click "Place Trade" under a signal
3. Confirm the trade here in DM
4. Your API keys are encrypted and only used when you confirm trades

Commands:
/register - Set up your API keys
/status - Check registration status
/settings - View your settings
/setleverage <n> - Default leverage (1-125)
/setsize <usdt> - Default position size
/balance - Check Bitunix balance
/delete - Remove your data
/help - Show this message

Signal formats supported:
SOL LONG / Entry: 142.4 / Stop Loss: 141.6 / Take Profit: 145-148
ETH SHORT @ 3500 | TP: 3400, 3300 | SL: 3600
BTCUSDT Long Entry: 95000 TP1: 96000 SL: 94000"""


# helpers to get shared objects from app.bot_data
def _cfg(ctx: ContextTypes.DEFAULT_TYPE) -> Config:
    return ctx.application.bot_data["cfg"]


def _orch(ctx: ContextTypes.DEFAULT_TYPE) -> TradeOrchestrator:
    return ctx.application.bot_data["orchestrator"]


def _store(ctx: ContextTypes.DEFAULT_TYPE) -> UserStore:
    return ctx.application.bot_data["store"]


def _registrations(ctx: ContextTypes.DEFAULT_TYPE) -> dict:
    return ctx.application.bot_data.setdefault("registrations", {})


def _is_private(update: Update) -> bool:
    chat = update.effective_chat
    return bool(chat) and chat.type == ChatType.PRIVATE


def _is_group(update: Update) -> bool:
    chat = update.effective_chat
    return bool(chat) and chat.type in (ChatType.GROUP, ChatType.SUPERGROUP)


def confirm_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [
            InlineKeyboardButton("📍 Limit Order", callback_data=Decision.LIMIT.value),
            InlineKeyboardButton("⚡ Market Order", callback_data=Decision.MARKET.value),
        ],
        [InlineKeyboardButton("❌ Cancel", callback_data=Decision.CANCEL.value)],
    ])


def price_warning_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("⚡ Execute at Market", callback_data=Decision.MARKET.value)],
        [InlineKeyboardButton("❌ Cancel", callback_data=Decision.CANCEL.value)],
    ])


def render_outcome(outcome: Outcome) -> tuple[str, Optional[InlineKeyboardMarkup]]:
    if isinstance(outcome, AwaitingConfirmation):
        text = "\n".join([
            "📈 Incoming Trade Signal",
            "",
            format_signal(outcome.signal),
            "",
            f"📊 Risk/Reward: {format_risk_reward(outcome.risk_reward)}",
            f"💵 Position Size: ${format_number(outcome.position_size)}",
            f"⚡ Leverage: {outcome.leverage}x",
            "",
            "Confirm execution:",
        ])
        return text, confirm_keyboard()

    if isinstance(outcome, PriceWarning):
        sig = outcome.signal
        price = format_number(outcome.current_price)
        entry = format_number(sig.entry_price)
        if sig.is_short:
            why = f"Since current price (${price}) ≥ entry (${entry}), a LIMIT SELL would execute immediately at market price."
        else:
            why = f"Since current price (${price}) ≤ entry (${entry}), a LIMIT BUY would execute immediately at market price."
        text = "\n".join([
            "⚠️ Price Warning",
            "",
            f"Current {sig.symbol} price: ${price}",
            f"Your entry price: ${entry}",
            "",
            why,
            "",
            "What would you like to do?",
        ])
        return text, price_warning_keyboard()

    if isinstance(outcome, TradeResult):
        return format_trade_result(outcome), None
    if isinstance(outcome, Cancelled):
        return "❌ Trade cancelled.", None
    if isinstance(outcome, NoPendingSignal):
        return '⚠️ No pending signal. Click "Place Trade" in the group again.', None
    return "❌ Unexpected state.", None


# ---------- group signals ----------

async def on_group_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    msg = update.effective_message
    if not msg or not _is_group(update):
        return
    text = msg.text or msg.caption or ""
    if not text or text.startswith("/"):
        return

    cfg = _cfg(context)
    log.info("group mid=%s first='%s'", msg.message_id, first_line(text, cfg.LOG_SNIPPET_LEN))

    result = parse_signal(text)
    if not result.ok:
        return  # не сигнал

    sig = result.signal
    log.info(
        "[PARSED] %s %s entry=%s stop=%s take=%s lev=%s (%s)",
        sig.symbol, sig.side.value, sig.entry_price, sig.stop_loss,
        list(sig.take_profits), sig.leverage or "x?", result.tier,
    )

    text_out = f"{format_signal(sig)}\n\n📊 Risk/Reward: {format_risk_reward(risk_reward(sig))}"
    keyboard = InlineKeyboardMarkup([
        [InlineKeyboardButton("📲 Place Trade", url=generate_deeplink(cfg.BOT_USERNAME, sig))],
    ])
    try:
        await msg.reply_text(text_out, reply_markup=keyboard)
    except Exception as e:
        log.warning("[WARN] reply with parsed signal failed: %s", e)


# ---------- private: /start, registration ----------

async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    msg = update.effective_message
    if not user or not msg or not _is_private(update):
        return

    store = _store(context)
    payload = context.args[0] if context.args else None

    if payload and is_encoded_signal(payload):
        sig = decode_signal(payload)
        if sig is None:
            await msg.reply_text("❌ Invalid trade signal. The link may be corrupted.")
            return
        if not store.is_registered(user.id):
            await msg.reply_text(
                "⚠️ You're not registered yet!\n\n"
                "To execute trades, register your Bitunix API keys first with /register.\n\n"
                f"Your User ID: {user.id}"
            )
            return

        outcome = await _orch(context).submit_signal(user.id, sig)
        text, keyboard = render_outcome(outcome)
        await msg.reply_text(text, reply_markup=keyboard)
        return

    registered = store.is_registered(user.id)
    await msg.reply_text(
        "🤖 Bitunix Trade Bot\n\n"
        "I execute trades on Bitunix from your trading groups.\n\n"
        f"Status: {'✅ Registered' if registered else '❌ Not registered'}\n\n"
        "Use /help to see commands.\n\n"
        f"Your User ID: {user.id}"
    )


async def cmd_register(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    msg = update.effective_message
    if not user or not msg:
        return
    if not _is_private(update):
        await msg.reply_text("⚠️ Please use /register in a private message to me for security.")
        return
    if _store(context).is_registered(user.id):
        await msg.reply_text("✅ You're already registered!\n\nUse /delete first if you want to update your API keys.")
        return

    _registrations(context)[user.id] = {"step": AWAITING_API_KEY}
    await msg.reply_text(
        "🔐 API Key Registration\n\n"
        "Step 1 of 2: send your Bitunix API Key.\n\n"
        "Make sure the key has Trading permission enabled. "
        "Your message will be deleted after I receive it."
    )


async def on_private_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    msg = update.effective_message
    if not user or not msg or not msg.text or not _is_private(update):
        return

    regs = _registrations(context)
    state = regs.get(user.id)
    if not state:
        return  # вне регистрации личные сообщения игнорируем

    # ключи не должны оставаться в истории чата
    try:
        await msg.delete()
    except Exception as e:
        log.info("delete secret message: %s", e)

    value = msg.text.strip()
    if len(value) < 10:
        await msg.reply_text("❌ That doesn't look like a valid key. Please try again.")
        return

    if state["step"] == AWAITING_API_KEY:
        regs[user.id] = {"step": AWAITING_API_SECRET, "api_key": value}
        await msg.reply_text("✅ API Key received!\n\nStep 2 of 2: now send your Bitunix API Secret.")
        return

    cfg = _cfg(context)
    _store(context).save_user(UserRecord(
        user_id=user.id,
        username=user.username,
        api_key=state["api_key"],
        api_secret=value,
        default_leverage=cfg.DEFAULT_LEVERAGE,
        default_position_size=cfg.DEFAULT_POSITION_SIZE_USDT,
        registered_at=time.time(),
    ))
    regs.pop(user.id, None)
    await msg.reply_text(
        "✅ Registration Complete!\n\n"
        "Your API keys have been encrypted and saved.\n\n"
        f"Default leverage: {cfg.DEFAULT_LEVERAGE}x\n"
        f"Default position size: ${format_number(cfg.DEFAULT_POSITION_SIZE_USDT)}"
    )


# ---------- private: account commands ----------

async def _require_registered(update: Update, context: ContextTypes.DEFAULT_TYPE, command: str) -> Optional[UserRecord]:
    user = update.effective_user
    msg = update.effective_message
    if not user or not msg:
        return None
    if not _is_private(update):
        await msg.reply_text(f"⚠️ Please use /{command} in a private message to me.")
        return None
    record = _store(context).get_user(user.id)
    if record is None:
        await msg.reply_text("❌ You need to /register first.")
    return record


async def cmd_status(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    msg = update.effective_message
    if not user or not msg:
        return
    if not _is_private(update):
        await msg.reply_text("⚠️ Please use /status in a private message to me.")
        return

    record = _store(context).get_user(user.id)
    if record is None:
        await msg.reply_text("❌ Registration Status: Not Registered\n\nUse /register to set up your Bitunix API keys.")
        return

    cfg = _cfg(context)
    since = time.strftime("%Y-%m-%d", time.gmtime(record.registered_at)) if record.registered_at else "unknown"
    await msg.reply_text(
        "✅ Registration Status: Registered\n\n"
        f"📅 Registered: {since}\n"
        f"⚡ Default Leverage: {record.default_leverage or cfg.DEFAULT_LEVERAGE}x\n"
        f"💵 Default Position Size: ${format_number(record.default_position_size or cfg.DEFAULT_POSITION_SIZE_USDT)}"
    )


async def cmd_settings(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    record = await _require_registered(update, context, "settings")
    if record is None:
        return
    cfg = _cfg(context)
    await update.effective_message.reply_text(
        "⚙️ Your Settings\n\n"
        f"⚡ Default Leverage: {record.default_leverage or cfg.DEFAULT_LEVERAGE}x\n"
        f"💵 Default Position Size: ${format_number(record.default_position_size or cfg.DEFAULT_POSITION_SIZE_USDT)}\n"
        f"🔑 API Key: ****{record.api_key[-4:]}\n\n"
        "To change settings:\n"
        "/setleverage <number> - e.g. /setleverage 20\n"
        "/setsize <amount> - e.g. /setsize 50"
    )


async def cmd_setleverage(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    record = await _require_registered(update, context, "setleverage")
    if record is None:
        return
    msg = update.effective_message
    if not context.args:
        await msg.reply_text("Usage: /setleverage <number>\n\nExample: /setleverage 20")
        return
    try:
        leverage = int(context.args[0])
    except ValueError:
        leverage = 0
    if not 1 <= leverage <= MAX_LEVERAGE:
        await msg.reply_text(f"❌ Invalid leverage. Please enter a number between 1 and {MAX_LEVERAGE}.")
        return

    if _store(context).update_settings(record.user_id, leverage=leverage):
        await msg.reply_text(f"✅ Default leverage updated to {leverage}x")
    else:
        await msg.reply_text("❌ Failed to update settings. Please try again.")


async def cmd_setsize(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    record = await _require_registered(update, context, "setsize")
    if record is None:
        return
    msg = update.effective_message
    if not context.args:
        await msg.reply_text("Usage: /setsize <amount>\n\nExample: /setsize 50")
        return
    try:
        size = float(context.args[0])
    except ValueError:
        size = 0.0
    if not MIN_POSITION_SIZE <= size <= MAX_POSITION_SIZE:
        await msg.reply_text("❌ Invalid position size. Please enter a number between 1 and 100000.")
        return

    if _store(context).update_settings(record.user_id, position_size=size):
        await msg.reply_text(f"✅ Default position size updated to ${format_number(size)}")
    else:
        await msg.reply_text("❌ Failed to update settings. Please try again.")


async def cmd_balance(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    record = await _require_registered(update, context, "balance")
    if record is None:
        return
    msg = update.effective_message
    broker = _orch(context).broker_factory(record.user_id)
    if broker is None:
        await msg.reply_text("❌ Failed to load your API keys. Please /register again.")
        return

    await msg.reply_text("⏳ Fetching balance...")
    try:
        res = await broker.get_balance()
    except Exception as e:
        log.error("[BALANCE] user=%s: %s", record.user_id, e)
        await msg.reply_text(f"❌ Error: {e}")
        return
    finally:
        await broker.aclose()

    if res.get("code") == 0:
        await msg.reply_text(f"💰 Balance\n\n{json.dumps(res.get('data'), indent=2)}")
    else:
        await msg.reply_text(f"❌ Failed to fetch balance: {res.get('msg') or 'Unknown error'}")


async def cmd_delete(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    msg = update.effective_message
    if not user or not msg:
        return
    if not _is_private(update):
        await msg.reply_text("⚠️ Please use /delete in a private message to me.")
        return
    if _store(context).delete_user(user.id):
        await msg.reply_text("✅ Data Deleted\n\nYour API keys and settings have been removed.")
    else:
        await msg.reply_text("ℹ️ You have no data to delete.")


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    msg = update.effective_message
    if msg:
        await msg.reply_text(HELP_TEXT)


async def cmd_stats(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = update.effective_user
    msg = update.effective_message
    if not user or not msg or not _cfg(context).is_admin(user.id):
        return  # не-админам молчим
    await msg.reply_text(f"📊 Bot Statistics\n\n👥 Registered Users: {_store(context).user_count()}")


# ---------- buttons ----------

async def on_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    if not query or not query.from_user:
        return
    user_id = query.from_user.id

    try:
        decision = Decision(query.data)
    except ValueError:
        await query.answer()
        return

    if not _store(context).is_registered(user_id):
        await query.answer("⚠️ Please /register first to execute trades.")
        return

    if decision is Decision.LIMIT:
        await query.answer("⏳ Placing limit order...")
    elif decision is Decision.MARKET:
        await query.answer("⏳ Placing market order...")
    else:
        await query.answer("Trade cancelled.")

    outcome = await _orch(context).confirm(user_id, decision)
    text, keyboard = render_outcome(outcome)
    await query.edit_message_text(text, reply_markup=keyboard)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    log.warning("[ERR] %s: %s", type(context.error).__name__, context.error)
    await asyncio.sleep(0.5)
