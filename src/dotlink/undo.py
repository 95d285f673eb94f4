"""Reversal of the last apply using only the recorded state."""

from __future__ import annotations

import logging

from .filesystem import occupied, remove_path, restore_entry
from .models import DotfileRecord, UndoReport
from .state import State, StateStore

logger = logging.getLogger(__name__)


class UndoEngine:
    """Removes recorded symlinks and puts backed-up content back in place."""

    def __init__(self, store: StateStore) -> None:
        self.store = store

    def undo(self, state: State | None = None) -> UndoReport:
        """Undo every recorded dotfile, then clear and persist the state.

        Per-record failures are collected in the report and do not stop the run.
        """

        if state is None:
            state = self.store.load()
        if state.is_empty:
            logger.info("Nothing to undo")
            return UndoReport(nothing_to_undo=True)

        symlinks_removed = 0
        backups_restored = 0
        errors: list[str] = []

        for record in state.dotfiles:
            removed, error = self._remove_link(record)
            if error is not None:
                errors.append(error)
                continue
            symlinks_removed += removed

            if record.backup_path is not None:
                if record.backup_path.exists() or record.backup_path.is_symlink():
                    try:
                        restore_entry(record.backup_path, record.target)
                    except OSError as exc:
                        message = f"Failed to restore backup from {record.backup_path} to {record.target}: {exc}"
                        logger.error(message)
                        errors.append(message)
                    else:
                        backups_restored += 1
                        logger.info("Restored backup %s → %s", record.backup_path, record.target)
                else:
                    logger.warning("Backup not found: %s", record.backup_path)

            if record.rendered_path is not None and record.rendered_path.exists():
                try:
                    record.rendered_path.unlink()
                except OSError as exc:
                    logger.debug("Could not clean up rendered file %s: %s", record.rendered_path, exc)

        state.clear()
        self.store.save(state)
        return UndoReport(
            symlinks_removed=symlinks_removed,
            backups_restored=backups_restored,
            errors=tuple(errors),
        )

    @staticmethod
    def _remove_link(record: DotfileRecord) -> tuple[int, str | None]:
        target = record.target
        if not occupied(target):
            logger.debug("Symlink already removed: %s", target)
            return 0, None

        if not target.is_symlink():
            message = f"Refusing to remove {target}: it is no longer a symlink"
            logger.warning(message)
            return 0, message

        try:
            remove_path(target)
        except OSError as exc:
            message = f"Failed to remove symlink {target}: {exc}"
            logger.error(message)
            return 0, message

        logger.info("Removed symlink %s", target)
        return 1, None
