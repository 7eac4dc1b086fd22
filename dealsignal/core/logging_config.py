import logging
import sys
from typing import Optional
from dealsignal.core.config import Settings, settings as default_settings

def setup_logging(app_settings: Optional[Settings] = None):
    """Configures logging for the application."""
    app_settings = app_settings or default_settings
    log_level = logging.DEBUG if app_settings.DEBUG else logging.INFO

    # Define format
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    handlers = [logging.StreamHandler(sys.stdout)]
    if app_settings.LOG_FILE:
        handlers.append(logging.FileHandler(app_settings.LOG_FILE, encoding="utf-8"))

    # Basic config
    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt=date_format,
        handlers=handlers
    )

    # Silence noisy libraries
    noisy_loggers = [
        "httpcore",
        "httpx",
        "asyncio",
        "multipart.multipart",
    ]

    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)
