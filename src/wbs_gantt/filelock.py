"""Single-editor lock on a project directory (.wbs-gantt/.lock)."""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path

from wbs_gantt.config import CONFIG_DIR

logger = logging.getLogger(__name__)

MAX_LOCK_AGE = 3600  # seconds
LOCK_FILE = ".lock"


def _lock_path(project_dir: Path) -> Path:
    return project_dir / CONFIG_DIR / LOCK_FILE


def _read_owner(lock_file: Path) -> tuple[int, float] | None:
    """(pid, timestamp) recorded in the lock file, None if unreadable."""
    try:
        pid_text, stamp_text = lock_file.read_text(encoding="utf-8").strip().split("|")
        return int(pid_text), float(stamp_text)
    except (ValueError, OSError):
        return None


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except OSError:
        return False
    return True


def _is_live(owner: tuple[int, float] | None) -> bool:
    if owner is None:
        return False
    pid, stamp = owner
    return _pid_alive(pid) and time.time() - stamp <= MAX_LOCK_AGE


def acquire_lock(project_dir: Path) -> bool:
    """Take the lock unless a live process holds it. Stale locks are replaced."""
    lock_file = _lock_path(project_dir)
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    if lock_file.exists():
        owner = _read_owner(lock_file)
        if owner is not None and owner[0] == os.getpid():
            return True
        if _is_live(owner):
            return False
        logger.info("removing stale lock %s", lock_file)
        try:
            lock_file.unlink()
        except FileNotFoundError:
            pass

    try:
        fd = os.open(lock_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
    except FileExistsError:
        # Another process won the race.
        return False
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(f"{os.getpid()}|{time.time()}")
    return True


def release_lock(project_dir: Path) -> None:
    """Remove the lock if this process owns it."""
    lock_file = _lock_path(project_dir)
    owner = _read_owner(lock_file)
    if owner is not None and owner[0] == os.getpid():
        try:
            lock_file.unlink()
        except FileNotFoundError:
            pass


def is_locked(project_dir: Path) -> bool:
    """Whether another live process holds the lock."""
    lock_file = _lock_path(project_dir)
    if not lock_file.exists():
        return False
    owner = _read_owner(lock_file)
    if owner is not None and owner[0] == os.getpid():
        return False
    return _is_live(owner)
