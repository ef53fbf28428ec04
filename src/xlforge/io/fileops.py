"""File operations: fingerprinting, rotating backups, atomic write, locking."""

from __future__ import annotations

import hashlib
import os
import shutil
import tempfile
import time
from datetime import datetime, timezone
from io import TextIOWrapper
from pathlib import Path

import portalocker

LOCK_SUFFIX = ".xlforge.lock"
BACKUP_MARKER = "_backup_"


def fingerprint(path: str | Path) -> str:
    """``sha256:<hex>`` of the file's bytes; reported after every save."""
    digest = hashlib.sha256()
    with Path(path).open("rb") as f:
        while chunk := f.read(65536):
            digest.update(chunk)
    return f"sha256:{digest.hexdigest()}"


def _backup_glob(path: Path) -> str:
    return f"{path.stem}{BACKUP_MARKER}*{path.suffix}"


def list_backups(path: str | Path) -> list[Path]:
    """Backups of ``path``, oldest first."""
    path = Path(path)
    return sorted(path.parent.glob(_backup_glob(path)))


def backup(path: str | Path) -> str:
    """Copy ``path`` to ``<stem>_backup_<utc timestamp><suffix>``. Returns the copy's path."""
    path = Path(path)
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    backup_path = path.parent / f"{path.stem}{BACKUP_MARKER}{ts}{path.suffix}"
    shutil.copy2(path, backup_path)
    return str(backup_path)


def prune_backups(path: str | Path, keep: int) -> list[str]:
    """Delete all but the newest ``keep`` backups. Returns removed paths."""
    backups = list_backups(path)
    stale = backups[:-keep] if keep > 0 else backups
    for p in stale:
        p.unlink()
    return [str(p) for p in stale]


def atomic_write(target: str | Path, data: bytes) -> None:
    """Replace ``target`` with ``data`` so readers never see a partial file."""
    target = Path(target)
    fd, name = tempfile.mkstemp(dir=target.parent, suffix=target.suffix, prefix=".xlforge_tmp_")
    tmp = Path(name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            os.fsync(f.fileno())
        os.replace(tmp, target)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def _lock_path_for(path: Path) -> Path:
    return path.parent / (path.name + LOCK_SUFFIX)


class WorkbookLock:
    """Exclusive ``<file>.xlforge.lock`` sidecar lock held while saving.

    ``timeout=0`` fails immediately with ``portalocker.LockException`` when
    another process holds the lock; a positive timeout polls until it expires.
    """

    def __init__(self, workbook_path: str | Path, *, timeout: float = 0) -> None:
        self.workbook_path = Path(workbook_path).resolve()
        self.timeout = timeout
        self.lock_path = _lock_path_for(self.workbook_path)
        self._lock_file: TextIOWrapper | None = None

    def _acquire(self, lock_file: TextIOWrapper) -> None:
        deadline = time.monotonic() + max(self.timeout, 0)
        while True:
            try:
                portalocker.lock(lock_file, portalocker.LOCK_EX | portalocker.LOCK_NB)
                return
            except portalocker.LockException:
                if time.monotonic() >= deadline:
                    raise
                time.sleep(min(0.1, max(0.01, self.timeout / 20)))

    def __enter__(self) -> "WorkbookLock":
        self._lock_file = open(self.lock_path, "a+")  # noqa: SIM115
        try:
            self._acquire(self._lock_file)
        except portalocker.LockException:
            self._lock_file.close()
            self._lock_file = None
            raise
        self._lock_file.seek(0)
        self._lock_file.truncate()
        self._lock_file.write(f"pid={os.getpid()}\n")
        self._lock_file.write(f"time={datetime.now(timezone.utc).isoformat()}\n")
        self._lock_file.flush()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        if self._lock_file is not None:
            try:
                portalocker.unlock(self._lock_file)
            finally:
                self._lock_file.close()
                self._lock_file = None


def check_lock(path: str | Path) -> dict:
    """Best-effort probe of the sidecar lock. Returns ``{locked, lock_file, holder?}``."""
    path = Path(path).resolve()
    lock_path = _lock_path_for(path)
    status: dict = {"exists": path.exists(), "locked": False, "lock_file": str(lock_path)}
    if not lock_path.exists():
        return status
    try:
        with open(lock_path, "a+") as fd:
            portalocker.lock(fd, portalocker.LOCK_EX | portalocker.LOCK_NB)
            portalocker.unlock(fd)
    except portalocker.LockException:
        holder: dict[str, str] = {}
        for line in lock_path.read_text().strip().splitlines():
            if "=" in line:
                k, v = line.split("=", 1)
                holder[k.strip()] = v.strip()
        status.update(locked=True, holder=holder)
    return status


def read_text_safe(path: str | Path) -> str:
    """Read a text file, stripping a leading UTF-8 BOM when present."""
    return Path(path).read_text(encoding="utf-8-sig")
