"""Logging setup helpers for rss-amplifier."""

from __future__ import annotations

import logging

LOGGER_NAME = "rss_amplifier"


def configure_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    if not debug:
        # APScheduler logs every job submission at INFO.
        logging.getLogger("apscheduler").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(name or LOGGER_NAME)
