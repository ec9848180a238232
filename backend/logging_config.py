# Logging Configuration

import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging() -> logging.Logger:
    """Configures the shared application logger (console only)."""
    app_logger = logging.getLogger("projecttrack")
    app_logger.setLevel(getattr(logging, LOG_LEVEL.upper(), logging.INFO))

    # Avoid duplicate handlers when the module is reloaded (uvicorn --reload, tests)
    app_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    app_logger.addHandler(console_handler)
    app_logger.propagate = False

    # Suppress noisy loggers
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("passlib").setLevel(logging.ERROR)

    return app_logger


logger = setup_logging()
