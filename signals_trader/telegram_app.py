# signals_trader/telegram_app.py
import logging
from typing import Optional

from telegram.ext import Application, CallbackQueryHandler, CommandHandler, MessageHandler, filters
from telegram.request import HTTPXRequest

from . import handlers
from .broker.bitunix import BitunixBroker
from .config import Config, load_config
from .logging_setup import setup_logging
from .orchestrator import BrokerFactory, TradeOrchestrator
from .user_store import UserStore

log = logging.getLogger(__name__)


def make_broker_factory(cfg: Config, store: UserStore) -> BrokerFactory:
    """Клиент Bitunix на ключах конкретного пользователя, None если ключей нет."""

    def factory(user_id: int) -> Optional[BitunixBroker]:
        user = store.get_user(user_id)
        if user is None:
            return None
        return BitunixBroker(
            user.api_key,
            user.api_secret,
            base_url=cfg.BITUNIX_BASE_URL,
            timeout_sec=cfg.BITUNIX_TIMEOUT_SEC,
        )

    return factory


def build_orchestrator(cfg: Config, store: UserStore) -> TradeOrchestrator:
    return TradeOrchestrator(
        make_broker_factory(cfg, store),
        store,
        default_position_size=cfg.DEFAULT_POSITION_SIZE_USDT,
        default_leverage=cfg.DEFAULT_LEVERAGE,
        auto_execute=cfg.ENABLE_AUTO_EXECUTE,
        price_timeout_sec=cfg.PRICE_CHECK_TIMEOUT_SEC,
    )


def register_handlers(app: Application) -> None:
    app.add_handler(CommandHandler("start", handlers.cmd_start))
    app.add_handler(CommandHandler("register", handlers.cmd_register))
    app.add_handler(CommandHandler("status", handlers.cmd_status))
    app.add_handler(CommandHandler("settings", handlers.cmd_settings))
    app.add_handler(CommandHandler("setleverage", handlers.cmd_setleverage))
    app.add_handler(CommandHandler("setsize", handlers.cmd_setsize))
    app.add_handler(CommandHandler("balance", handlers.cmd_balance))
    app.add_handler(CommandHandler("delete", handlers.cmd_delete))
    app.add_handler(CommandHandler("help", handlers.cmd_help))
    app.add_handler(CommandHandler("stats", handlers.cmd_stats))
    app.add_handler(CallbackQueryHandler(handlers.on_callback))
    app.add_handler(
        MessageHandler(filters.ChatType.GROUPS & (filters.TEXT | filters.CAPTION) & ~filters.COMMAND,
                       handlers.on_group_message)
    )
    app.add_handler(
        MessageHandler(filters.ChatType.PRIVATE & filters.TEXT & ~filters.COMMAND, handlers.on_private_text)
    )
    app.add_error_handler(handlers.error_handler)


async def post_init(app: Application) -> None:
    """Хук PTB v20+: уже внутри event loop, проверяем бота и сбрасываем вебхук."""
    cfg: Config = app.bot_data["cfg"]
    store: UserStore = app.bot_data["store"]

    me = await app.bot.get_me()
    log.info("Logged in as @%s (%s)", me.username, me.id)
    if me.username and cfg.BOT_USERNAME and me.username.lower() != cfg.BOT_USERNAME.lower():
        log.error("✖ BOT_USERNAME=%s, but token belongs to @%s: deeplinks will be wrong", cfg.BOT_USERNAME, me.username)

    try:
        await app.bot.delete_webhook(drop_pending_updates=cfg.TELEGRAM_DROP_PENDING)
        log.info("Webhook cleared.")
    except Exception as e:
        log.info("delete_webhook: %s", e)

    log.info(
        "Defaults: leverage=x%s size=%s auto_execute=%s admins=%s users=%s",
        cfg.DEFAULT_LEVERAGE,
        cfg.DEFAULT_POSITION_SIZE_USDT,
        cfg.ENABLE_AUTO_EXECUTE,
        ",".join(map(str, cfg.ADMIN_USER_IDS)) or "none",
        store.user_count(),
    )
    log.info("Application started")


def build_app(cfg: Config) -> Application:
    store = UserStore(cfg.USER_STORE_PATH, cfg.ENCRYPTION_KEY)

    # HTTPX таймауты для Telegram
    request = HTTPXRequest(
        connect_timeout=15.0,
        read_timeout=60.0,
        write_timeout=60.0,
        pool_timeout=15.0,
        connection_pool_size=16,
    )

    app = (
        Application.builder()
        .token(cfg.BOT_TOKEN)
        .request(request)
        # апдейты разных пользователей не ждут заявку на бирже
        .concurrent_updates(True)
        .post_init(post_init)
        .build()
    )
    app.bot_data["cfg"] = cfg
    app.bot_data["store"] = store
    app.bot_data["orchestrator"] = build_orchestrator(cfg, store)
    app.bot_data["registrations"] = {}

    register_handlers(app)
    return app


def run_app() -> None:
    """PTB v20+: без asyncio.run, run_polling() сам поднимает и закрывает loop."""
    cfg = load_config()
    if not cfg.is_ready():
        raise SystemExit("✖ BOT_TOKEN / BOT_USERNAME / ENCRYPTION_KEY не заданы в .env")

    setup_logging(cfg)
    log.info("Trade bot running as @%s", cfg.BOT_USERNAME)

    app = build_app(cfg)
    app.run_polling(
        allowed_updates=cfg.TELEGRAM_ALLOWED_UPDATES,
        drop_pending_updates=cfg.TELEGRAM_DROP_PENDING,
        poll_interval=cfg.TELEGRAM_POLL_INTERVAL,
    )


if __name__ == "__main__":
    run_app()
