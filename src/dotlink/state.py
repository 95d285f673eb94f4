"""State persistence for dotlink."""

from __future__ import annotations

import logging
import os
import tempfile
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import tomli_w

from .errors import StateDeserializationError, StateError, StateSerializationError
from .models import DotfileRecord, PackageRecord

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class State:
    """Everything dotlink has materialized, as of ``applied_at``."""

    applied_at: datetime = field(default_factory=_now)
    applied_commit: str | None = None
    dotfiles: list[DotfileRecord] = field(default_factory=list)
    packages: list[PackageRecord] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.dotfiles and not self.packages

    def add_dotfile(self, record: DotfileRecord) -> None:
        """Record a dotfile, replacing any existing record for the same target."""

        for index, existing in enumerate(self.dotfiles):
            if existing.target == record.target:
                self.dotfiles[index] = record
                break
        else:
            self.dotfiles.append(record)
        self.applied_at = _now()

    def add_package(self, record: PackageRecord) -> None:
        self.packages.append(record)
        self.applied_at = _now()

    def remove_dotfile(self, target: Path) -> None:
        self.dotfiles = [record for record in self.dotfiles if record.target != target]
        self.applied_at = _now()

    def dotfile_for(self, target: Path) -> DotfileRecord | None:
        for record in self.dotfiles:
            if record.target == target:
                return record
        return None

    def has_package(self, name: str, manager: str) -> bool:
        return any(record.name == name and record.manager == manager for record in self.packages)

    def clear(self) -> None:
        self.applied_commit = None
        self.dotfiles.clear()
        self.packages.clear()
        self.applied_at = _now()


class StateStore:
    """Reads and atomically writes the TOML state file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> State:
        if not self.path.exists():
            logger.debug("No state file at %s; starting empty", self.path)
            return State()

        try:
            with self.path.open("rb") as handle:
                data = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise StateDeserializationError(self.path, str(exc)) from exc
        except OSError as exc:
            raise StateError(f"Failed to read state file: {self.path}") from exc

        try:
            return self._state_from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise StateDeserializationError(self.path, f"invalid field: {exc}") from exc

    def save(self, state: State) -> None:
        """Write ``state`` to a sibling temp file, fsync it, then rename it into place."""

        try:
            content = tomli_w.dumps(self._state_to_dict(state))
        except (TypeError, ValueError) as exc:
            raise StateSerializationError(str(exc)) from exc

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
        except OSError as exc:
            raise StateError(f"Failed to write state file: {self.path}") from exc

        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(content.encode("utf-8"))
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, self.path)
        except OSError as exc:
            temp_path.unlink(missing_ok=True)
            raise StateError(f"Failed to write state file: {self.path}") from exc
        except Exception:
            temp_path.unlink(missing_ok=True)
            raise
        logger.debug("Saved state to %s", self.path)

    @staticmethod
    def _state_to_dict(state: State) -> dict[str, Any]:
        payload: dict[str, Any] = {"applied_at": state.applied_at}
        if state.applied_commit is not None:
            payload["applied_commit"] = state.applied_commit

        dotfiles: list[dict[str, str]] = []
        for record in state.dotfiles:
            item = {"source": str(record.source), "target": str(record.target)}
            if record.backup_path is not None:
                item["backup_path"] = str(record.backup_path)
            if record.rendered_path is not None:
                item["rendered_path"] = str(record.rendered_path)
            dotfiles.append(item)

        payload["dotfiles"] = dotfiles
        payload["packages"] = [{"name": record.name, "manager": record.manager} for record in state.packages]
        return payload

    @staticmethod
    def _state_from_dict(data: dict[str, Any]) -> State:
        applied_at = data["applied_at"]
        if not isinstance(applied_at, datetime):
            raise TypeError(f"applied_at must be a datetime, got {type(applied_at).__name__}")

        dotfiles = []
        for item in data.get("dotfiles", []):
            backup = item.get("backup_path")
            rendered = item.get("rendered_path")
            dotfiles.append(
                DotfileRecord(
                    source=Path(item["source"]),
                    target=Path(item["target"]),
                    backup_path=Path(backup) if backup is not None else None,
                    rendered_path=Path(rendered) if rendered is not None else None,
                )
            )

        packages = [PackageRecord(name=item["name"], manager=item["manager"]) for item in data.get("packages", [])]
        return State(
            applied_at=applied_at,
            applied_commit=data.get("applied_commit"),
            dotfiles=dotfiles,
            packages=packages,
        )
