"""
Qubit Message Service - Logging Setup

Console logging always; file logging when LOG_FILE is set.
"""

import logging
import os
import sys

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO", log_file: str = "") -> None:
    """Configure the root logger once for the whole process."""
    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        # Ensure logs directory exists
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
