#!/usr/bin/env python3
"""Shared logging helpers for epochkeeper."""

from __future__ import annotations

import logging
import sys

from env_utils import env_str

_DEFAULT_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
_DEFAULT_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"


def _env_level(default: int) -> int:
    raw = env_str("KEEPER_LOG_LEVEL")
    if not raw:
        return default
    val = str(raw).strip().upper()
    if val.isdigit():
        return int(val)
    return getattr(logging, val, default)


def get_logger(name: str) -> logging.Logger:
    """Get or create a logger with standard formatting."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(_DEFAULT_FORMAT, datefmt=_DEFAULT_DATEFMT)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(_env_level(logging.INFO))
    return logger


def setup_logging(name: str, verbose: bool = False) -> logging.Logger:
    """Setup logging for a component (stdout only; the scheduler captures it)."""
    logger = logging.getLogger(name)
    logger.handlers = []
    logger.propagate = False
    logger.setLevel(_env_level(logging.DEBUG if verbose else logging.INFO))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter(_DEFAULT_FORMAT, datefmt=_DEFAULT_DATEFMT))
    logger.addHandler(console_handler)

    return logger
