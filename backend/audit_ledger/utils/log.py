"""
Logging Setup — console handler plus a plain file log under LOG_DIR.
"""
import logging
import os

from audit_ledger.config import get_settings

_FORMAT = "%(asctime)s - %(levelname)s - %(name)s: %(message)s"
_configured = False


def configure_logging() -> None:
    """Attach console and file handlers to the package logger (idempotent)."""
    global _configured
    if _configured:
        return

    settings = get_settings()
    root = logging.getLogger("audit_ledger")
    root.setLevel(settings.LOG_LEVEL.upper())

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(_FORMAT))
    root.addHandler(console)

    try:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        file_handler = logging.FileHandler(
            os.path.join(settings.LOG_DIR, "audit-ledger.log"), encoding="utf-8"
        )
        file_handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(file_handler)
    except OSError:
        root.warning("Log directory %s is not writable; logging to console only", settings.LOG_DIR)

    _configured = True
