"""Filesystem helpers for dotlink."""

from __future__ import annotations

import os
import shutil
from datetime import datetime
from pathlib import Path

BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def ensure_parent(path: Path) -> None:
    """Ensure the parent directory exists."""

    path.parent.mkdir(parents=True, exist_ok=True)


def occupied(path: Path) -> bool:
    """Return ``True`` if anything, including a dangling symlink, sits at ``path``."""

    return os.path.lexists(path)


def is_real_directory(path: Path) -> bool:
    return path.is_dir() and not path.is_symlink()


def link_destination(link: Path) -> Path:
    """Return the canonical path ``link`` points to.

    Relative link text is resolved against the link's parent directory.
    """

    current = Path(os.readlink(link))
    return (link.parent / current).resolve(strict=False)


def symlink_points_to(link: Path, expected: Path) -> bool:
    """Return ``True`` if ``link`` is a symlink resolving to ``expected``."""

    if not link.is_symlink():
        return False
    return link_destination(link) == expected.resolve(strict=False)


def backup_path_for(target: Path, *, now: datetime | None = None) -> Path:
    """Return a free sibling path ``<name>.backup.<YYYYMMDD_HHMMSS>`` for ``target``.

    When that name is taken, ``.1``, ``.2`` and so on are appended until one is free.
    """

    timestamp = (now or datetime.now()).strftime(BACKUP_TIMESTAMP_FORMAT)
    backup = target.with_name(f"{target.name}.backup.{timestamp}")
    counter = 1
    while occupied(backup):
        backup = target.with_name(f"{target.name}.backup.{timestamp}.{counter}")
        counter += 1
    return backup


def backup_entry(target: Path, *, now: datetime | None = None) -> Path:
    """Preserve the content at ``target`` beside it and return the backup path.

    Real directories are renamed away, so ``target`` no longer exists afterwards.
    A symlinked directory has the content it points to copied; files are copied.
    """

    backup = backup_path_for(target, now=now)
    if is_real_directory(target):
        target.rename(backup)
    elif target.is_dir():
        shutil.copytree(target, backup, symlinks=True, copy_function=shutil.copy2)
    else:
        shutil.copy2(target, backup)
    return backup


def restore_entry(backup: Path, destination: Path) -> None:
    """Copy a backup made by :func:`backup_entry` back to ``destination``."""

    ensure_parent(destination)
    if backup.is_dir():
        shutil.copytree(backup, destination, symlinks=True, copy_function=shutil.copy2)
    else:
        shutil.copy2(backup, destination)


def remove_path(path: Path) -> None:
    """Delete ``path`` whether it is a file, directory, or symlink."""

    if not occupied(path):
        return
    if path.is_symlink() or not path.is_dir():
        path.unlink()
        return
    shutil.rmtree(path)
