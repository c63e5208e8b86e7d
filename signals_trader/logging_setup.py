# signals_trader/logging_setup.py
import logging
import re
from typing import Iterable

from .config import Config

# токен бота попадает в URL запросов telegram/httpx
RE_BOT_TOKEN = re.compile(r"\d{6,}:[A-Za-z0-9_-]{30,}")

_QUIET_LEVELS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "telegram.request": logging.INFO,
    "telegram.ext": logging.INFO,
}
_VERBOSE_LEVELS = {
    "httpx": logging.DEBUG,
    "httpcore": logging.DEBUG,
    "telegram.request": logging.DEBUG,
}


class RedactFilter(logging.Filter):
    """Маскирует токен бота и явно переданные секреты в итоговом тексте записи."""

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        super().__init__()
        self.secrets = [s for s in secrets if s]

    def filter(self, record: logging.LogRecord) -> bool:
        text = record.getMessage()
        masked = RE_BOT_TOKEN.sub("<bot-token>", text)
        for secret in self.secrets:
            masked = masked.replace(secret, "***")
        if masked != text:
            record.msg, record.args = masked, None
        return True


def setup_logging(cfg: Config) -> None:
    logging.basicConfig(
        level=getattr(logging, cfg.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%H:%M:%S",
    )

    redact = RedactFilter([cfg.BOT_TOKEN, cfg.ENCRYPTION_KEY])
    for handler in logging.getLogger().handlers:
        handler.addFilter(redact)

    # Bitunix и Telegram ходят через httpx
    levels = _VERBOSE_LEVELS if cfg.LOG_HTTP_VERBOSE else _QUIET_LEVELS
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)

    logging.info("Logging ready: level=%s, http_verbose=%s", cfg.LOG_LEVEL, cfg.LOG_HTTP_VERBOSE)
