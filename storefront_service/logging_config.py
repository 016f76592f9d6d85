"""
logging_config.py — Logging setup for the storefront service

Environment:
    LOG_LEVEL  level name for the root logger (default INFO)
    LOG_FILE   log file path; an empty value logs to stdout only
"""

import logging
import os
import sys

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FILE = os.environ.get("LOG_FILE", "storefront.log")


def setup_logging():
    """Installs the PID-tagged format on stdout and, if configured, the log file."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if LOG_FILE:
        handlers.insert(0, logging.FileHandler(LOG_FILE))

    logging.basicConfig(
        level=LOG_LEVEL.upper(),
        format='%(asctime)s - %(levelname)s - [PID:%(process)d] - %(message)s',
        handlers=handlers
    )

    # pika logs every frame at INFO, httpx every request
    for noisy in ("pika", "httpx", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name):
    return logging.getLogger(name)
