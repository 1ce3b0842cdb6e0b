"""Advisory single-run lock keyed on the rewards contract address."""

from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path
from typing import IO, Optional


def lock_path_for(runtime_dir: str, contract_address: str) -> Path:
    return Path(runtime_dir) / f"keeper_{contract_address.lower()}.lock"


def acquire_keeper_lock(lock_path: Path, log: Optional[logging.Logger] = None) -> Optional[IO[str]]:
    """Non-blocking flock. Returns the open handle, or None if another run holds it."""
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    fh = lock_path.open("a+", encoding="utf-8")
    try:
        fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        fh.close()
        return None
    try:
        fh.seek(0)
        fh.truncate(0)
        fh.write(f"{os.getpid()}\n")
        fh.flush()
    except OSError as exc:
        if log:
            log.debug(f"lock pid write failed: {exc}")
    return fh


def release_keeper_lock(lock_fh: Optional[IO[str]]) -> None:
    if lock_fh is None:
        return
    try:
        fcntl.flock(lock_fh.fileno(), fcntl.LOCK_UN)
    finally:
        lock_fh.close()
