"""Root logger setup for the account service."""

from __future__ import annotations

import logging

from pythonjsonlogger.json import JsonFormatter

from .config import Settings

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(settings: Settings) -> None:
    """Install a single stream handler on the root logger.

    Production emits JSON lines; other environments use a readable text format.
    Calling this again replaces the previously installed handler.
    """
    handler = logging.StreamHandler()
    if settings.is_production:
        handler.setFormatter(
            JsonFormatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s",
                rename_fields={"levelname": "level", "asctime": "timestamp"},
            )
        )
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(_LEVELS.get(settings.log_level, logging.INFO))
