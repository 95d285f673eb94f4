"""Shared models and enums for dotlink."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class ResourceKind(str, Enum):
    """Kinds of resources managed by dotlink."""

    DOTFILE = "dotfile"
    PACKAGE = "package"
    HOOK = "hook"


class ChangeKind(str, Enum):
    ADD = "add"
    MODIFY = "modify"
    ALREADY_CORRECT = "already_correct"


@dataclass(frozen=True, slots=True)
class Change:
    """A difference between the declared and the observed state of one resource.

    Changes only describe work; the link manager and package manager perform it.
    """

    kind: ChangeKind
    resource_kind: ResourceKind
    description: str
    reason: str | None = None

    @classmethod
    def add(cls, resource_kind: ResourceKind, description: str) -> "Change":
        return cls(ChangeKind.ADD, resource_kind, description)

    @classmethod
    def modify(cls, resource_kind: ResourceKind, description: str, reason: str) -> "Change":
        return cls(ChangeKind.MODIFY, resource_kind, description, reason)

    @classmethod
    def already_correct(cls, resource_kind: ResourceKind, description: str) -> "Change":
        return cls(ChangeKind.ALREADY_CORRECT, resource_kind, description)

    @property
    def is_pending(self) -> bool:
        return self.kind is not ChangeKind.ALREADY_CORRECT


@dataclass(frozen=True, slots=True)
class DotfileRecord:
    """A symlink created by dotlink, with what is needed to reverse it."""

    source: Path
    target: Path
    backup_path: Path | None = None
    rendered_path: Path | None = None


@dataclass(frozen=True, slots=True)
class PackageRecord:
    name: str
    manager: str


class ApplyAction(str, Enum):
    """Outcome of an apply operation for a resource."""

    LINKED = "linked"
    UNCHANGED = "unchanged"
    RENDERED = "rendered"
    SKIPPED = "skipped"
    INSTALLED = "installed"
    RAN = "ran"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ApplyResult:
    """Result emitted for each resource visited during apply."""

    resource_kind: ResourceKind
    name: str
    action: ApplyAction
    details: str | None = None
    error: BaseException | None = None


@dataclass(frozen=True, slots=True)
class ApplyReport:
    results: tuple[ApplyResult, ...]

    @property
    def failures(self) -> tuple[ApplyResult, ...]:
        return tuple(result for result in self.results if result.action is ApplyAction.FAILED)

    @property
    def ok(self) -> bool:
        return not self.failures


class StatusState(str, Enum):
    """Drift states reported by ``dotlink status``."""

    IN_SYNC = "in_sync"
    MISSING = "missing"
    NOT_SYMLINK = "not_symlink"
    BROKEN_LINK = "broken_link"
    SOURCE_MISSING = "source_missing"
    WRONG_TARGET = "wrong_target"
    NOT_INSTALLED = "not_installed"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """Status information for a recorded resource."""

    resource_kind: ResourceKind
    name: str
    state: StatusState
    details: str | None = None


@dataclass(frozen=True, slots=True)
class StatusReport:
    """Collection of status results for a manager run."""

    entries: tuple[StatusEntry, ...]

    @property
    def has_drift(self) -> bool:
        return any(entry.state is not StatusState.IN_SYNC for entry in self.entries)

    def count(self, resource_kind: ResourceKind, *, in_sync: bool | None = None) -> int:
        return sum(
            1
            for entry in self.entries
            if entry.resource_kind is resource_kind
            and (in_sync is None or (entry.state is StatusState.IN_SYNC) == in_sync)
        )


@dataclass(frozen=True, slots=True)
class UndoReport:
    symlinks_removed: int = 0
    backups_restored: int = 0
    errors: tuple[str, ...] = ()
    nothing_to_undo: bool = False

    def summary_lines(self) -> list[str]:
        if self.nothing_to_undo:
            return ["Nothing to undo."]
        lines = [
            f"{self.symlinks_removed} symlinks removed",
            f"{self.backups_restored} backups restored",
        ]
        if self.errors:
            lines.append(f"{len(self.errors)} errors occurred")
        return lines
