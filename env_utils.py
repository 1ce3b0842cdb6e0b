"""Environment helpers for epochkeeper (loads .env + typed accessors)."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# Load .env early for any module importing env_utils.
load_dotenv(Path(__file__).parent / ".env")


def _env_lookup(name: str) -> Optional[str]:
    return os.getenv(name)


def env_present(name: str) -> bool:
    value = _env_lookup(name)
    return value is not None and str(value).strip() != ""


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    if not env_present(name):
        return default
    return str(_env_lookup(name) or "").strip()


def env_first(*names: str) -> Optional[str]:
    """Return the first non-empty value among *names* (new name first, legacy after)."""
    for name in names:
        if env_present(name):
            return env_str(name)
    return None


def env_int(name: str, default: int) -> int:
    if not env_present(name):
        return default
    try:
        return int(str(_env_lookup(name) or "").strip())
    except (TypeError, ValueError):
        return default


def env_float(name: str, default: float) -> float:
    if not env_present(name):
        return default
    try:
        return float(str(_env_lookup(name) or "").strip())
    except (TypeError, ValueError):
        return default
    value = str(_env_lookup(name) or "").strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    return default


_DEFAULT_ROOT = Path(__file__).resolve().parent
_ROOT_RAW = env_str("KEEPER_ROOT", str(_DEFAULT_ROOT)) or str(_DEFAULT_ROOT)
_ROOT_PATH = Path(_ROOT_RAW).expanduser()
if not _ROOT_PATH.is_absolute():
    _ROOT_PATH = (_DEFAULT_ROOT / _ROOT_PATH).resolve()

KEEPER_ROOT = str(_ROOT_PATH)
KEEPER_RUNTIME_DIR = env_str("KEEPER_RUNTIME_DIR", str(Path(KEEPER_ROOT) / "state"))
KEEPER_CONFIG_FILE = env_str("KEEPER_CONFIG_FILE", str(Path(KEEPER_ROOT) / "keeper.yaml"))
