"""Symlink creation with conflict handling for dotfiles."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path

from .config import Dotfile, MergedConfig
from .conflict import ConflictChoice, ConflictPolicy
from .diff import rendered_path_for, resolve_dotfile_paths
from .errors import (
    DotlinkError,
    LinkExistsError,
    SourceMissingError,
    SymlinkFailedError,
    TargetIOError,
    TemplateError,
)
from .filesystem import backup_entry, ensure_parent, occupied, remove_path, symlink_points_to
from .models import ApplyAction, DotfileRecord
from .paths import PathProvider
from .state import State
from .template import HostContext, TemplateRenderer

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LinkOutcome:
    target: Path
    action: ApplyAction
    record: DotfileRecord | None = None


class LinkManager:
    """Materializes dotfiles as symlinks and records them in a :class:`State`.

    An occupied target is only replaced after the :class:`ConflictPolicy` says so,
    except when it is already the expected link or a link recorded by an earlier run.
    """

    def __init__(
        self,
        paths: PathProvider,
        policy: ConflictPolicy,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.paths = paths
        self.policy = policy
        self.renderer = renderer

    def apply_dotfile(self, dotfile: Dotfile, config: MergedConfig, state: State) -> LinkOutcome:
        source, target = resolve_dotfile_paths(dotfile, self.paths, config.base_dir)
        if not source.exists():
            raise SourceMissingError(source)

        if not dotfile.is_template:
            return self.link(source, target, state)

        rendered, changed = self.render_to_cache(dotfile, source, config)
        outcome = self.link(source, target, state, link_source=rendered, rendered_path=rendered)
        if changed and outcome.action is ApplyAction.UNCHANGED:
            return replace(outcome, action=ApplyAction.RENDERED)
        return outcome

    def render_to_cache(self, dotfile: Dotfile, source: Path, config: MergedConfig) -> tuple[Path, bool]:
        """Render ``source`` into the private cache.

        Returns the cache file and whether its content changed.
        """

        if self.renderer is None:
            raise DotlinkError(f"No template renderer configured for {source}")

        try:
            text = source.read_text(encoding="utf-8")
        except OSError as exc:
            raise TemplateError(f"Failed to read template: {source}") from exc

        host = HostContext(name=config.host_name or "default", roles=config.roles)
        rendered = self.renderer.render(text, config.variables, host)

        cache_path = rendered_path_for(dotfile, self.paths)
        try:
            if cache_path.is_file() and cache_path.read_text(encoding="utf-8") == rendered:
                return cache_path, False
            cache_path.parent.mkdir(parents=True, exist_ok=True)
            cache_path.write_text(rendered, encoding="utf-8")
        except OSError as exc:
            raise TemplateError(f"Failed to write rendered template: {cache_path}") from exc
        logger.info("Rendered %s", cache_path)
        return cache_path, True

    def link(
        self,
        source: Path,
        target: Path,
        state: State,
        *,
        link_source: Path | None = None,
        rendered_path: Path | None = None,
    ) -> LinkOutcome:
        """Point ``target`` at ``link_source`` (``source`` by default).

        ``source`` is what gets recorded; for templates ``link_source`` is the rendered
        cache file.
        """

        link_source = link_source or source
        if not link_source.exists():
            raise SourceMissingError(link_source)

        previous = state.dotfile_for(target)
        previous_backup = previous.backup_path if previous is not None else None
        backup: Path | None = None

        if occupied(target):
            if symlink_points_to(target, link_source):
                record = DotfileRecord(source, target, previous_backup, rendered_path)
                state.add_dotfile(record)
                logger.debug("%s already links to %s", target, link_source)
                return LinkOutcome(target, ApplyAction.UNCHANGED, record)

            if previous is not None and target.is_symlink():
                logger.debug("Replacing link %s recorded by an earlier run", target)
                self._remove(target)
            else:
                choice = self.policy.decide(target, link_source)
                if choice is ConflictChoice.SKIP:
                    logger.info("Skipped %s", target)
                    return LinkOutcome(target, ApplyAction.SKIPPED)
                if choice is ConflictChoice.BACKUP and target.exists():
                    backup = self._backup(target)
                if occupied(target):
                    self._remove(target)

        try:
            ensure_parent(target)
        except OSError as exc:
            raise TargetIOError("create parent directory", target.parent) from exc

        try:
            target.symlink_to(link_source)
        except FileExistsError as exc:
            raise LinkExistsError(target) from exc
        except OSError as exc:
            raise SymlinkFailedError(link_source, target, exc.strerror or str(exc)) from exc

        record = DotfileRecord(
            source=source,
            target=target,
            backup_path=backup or previous_backup,
            rendered_path=rendered_path,
        )
        state.add_dotfile(record)
        logger.info("Linked %s → %s", target, link_source)
        return LinkOutcome(target, ApplyAction.LINKED, record)

    @staticmethod
    def _backup(target: Path) -> Path:
        try:
            backup = backup_entry(target)
        except OSError as exc:
            raise TargetIOError("create backup", target) from exc
        logger.info("Backed up %s to %s", target, backup)
        return backup

    @staticmethod
    def _remove(target: Path) -> None:
        try:
            remove_path(target)
        except OSError as exc:
            raise TargetIOError("remove existing target", target) from exc
