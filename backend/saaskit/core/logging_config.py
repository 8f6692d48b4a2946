"""
Logging configuration - console output plus rotating files in development.

In dev (DEBUG=True): logs go to console AND <LOG_DIR>/saaskit.log (if writable).
Billing loggers (Stripe webhook reconciliation, checkout/portal) also write to
<LOG_DIR>/billing.log so delivered events can be audited apart from app noise.
In production: console only (container orchestrators capture stdout).
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from saaskit.core.config import settings

DEFAULT_LOG_DIR = Path(__file__).resolve().parent.parent.parent / "logs"
APP_LOG_NAME = "saaskit.log"
BILLING_LOG_NAME = "billing.log"
MAX_BYTES = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 3

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

BILLING_LOGGERS = ("saaskit.services.subscription_service",)
NOISY_LOGGERS = ("httpcore", "httpx", "stripe", "aiosqlite", "asyncio", "sqlalchemy.engine")


def _level(name: str, default: int = logging.INFO) -> int:
    level = logging.getLevelName(name.strip().upper()) if name else default
    return level if isinstance(level, int) else default


def resolve_log_dir() -> Path:
    """LOG_DIR do settings, ou backend/logs quando vazio."""
    return Path(settings.LOG_DIR).expanduser() if settings.LOG_DIR else DEFAULT_LOG_DIR


def _build_file_handler(path: Path) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def configure_billing_loggers() -> None:
    """Apply BILLING_LOG_LEVEL to the webhook/checkout loggers."""
    level = _level(settings.BILLING_LOG_LEVEL)
    for name in BILLING_LOGGERS:
        logging.getLogger(name).setLevel(level)


def setup_logging() -> None:
    """Configure root logger with console + optional file handlers."""
    level = _level(settings.LOG_LEVEL)
    root = logging.getLogger()
    root.setLevel(level)

    configure_billing_loggers()
    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    # Avoid duplicate handlers on reload
    if root.handlers:
        return

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.DEBUG)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(console)

    if settings.DEBUG:
        log_dir = resolve_log_dir()
        try:
            root.addHandler(_build_file_handler(log_dir / APP_LOG_NAME))
            billing_handler = _build_file_handler(log_dir / BILLING_LOG_NAME)
            for name in BILLING_LOGGERS:
                logging.getLogger(name).addHandler(billing_handler)
        except OSError as exc:
            root.warning("File logging disabled: cannot write to %s (%s)", log_dir, exc)
