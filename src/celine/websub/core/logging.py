# celine/websub/core/logging.py
from __future__ import annotations

import logging
import sys

from pythonjsonlogger import jsonlogger

PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO", *, json: bool = False) -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    if json:
        handler.setFormatter(jsonlogger.JsonFormatter(JSON_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))

    # Avoid duplicate handlers on reload
    root.handlers = [handler]
