"""Locked, atomic JSON/CSV persistence for the tracker's data files."""
from __future__ import annotations

import csv
import fcntl
import json
import logging
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator, Iterable

log = logging.getLogger("jupstake.file_lock")


@contextmanager
def exclusive_file_lock(path: Path) -> Generator[None, None, None]:
    """Hold an exclusive flock on <path>.lock for the duration of the block."""
    lock_path = path.with_suffix(path.suffix + ".lock")
    lock_path.parent.mkdir(parents=True, exist_ok=True)

    with open(lock_path, "w") as lock_file:
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)


def safe_read_json(path: Path) -> Any:
    """Read JSON under lock, restoring from the .bak copy if the file is corrupt.

    Raises FileNotFoundError if the file does not exist and
    json.JSONDecodeError if it is corrupt with no backup to fall back on.
    """
    with exclusive_file_lock(path):
        if not path.exists():
            raise FileNotFoundError(path)

        try:
            with open(path, "r") as f:
                return json.load(f)
        except json.JSONDecodeError:
            backup_path = path.with_suffix(path.suffix + ".bak")
            if not backup_path.exists():
                raise
            log.warning("Corrupted data file %s, restoring from %s", path, backup_path)
            shutil.copy(backup_path, path)
            with open(path, "r") as f:
                return json.load(f)


def _atomic_write(path: Path, write: Any) -> None:
    with exclusive_file_lock(path):
        path.parent.mkdir(parents=True, exist_ok=True)

        if path.exists():
            shutil.copy(path, path.with_suffix(path.suffix + ".bak"))

        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with open(tmp_path, "w", newline="") as f:
            write(f)
        tmp_path.rename(path)


def safe_write_json(path: Path, data: Any, indent: int = 2) -> None:
    """Write JSON under lock via tmp + rename, keeping a .bak of the old file."""
    _atomic_write(path, lambda f: json.dump(data, f, indent=indent))


def safe_write_csv(path: Path, header: list[str], rows: Iterable[Iterable[Any]]) -> None:
    """Write CSV under lock via tmp + rename, keeping a .bak of the old file."""
    def write(f: Any) -> None:
        writer = csv.writer(f)
        writer.writerow(header)
        writer.writerows(rows)

    _atomic_write(path, write)
