"""Package manager boundary and the Homebrew implementation."""

from __future__ import annotations

import logging
import subprocess
import sys
from typing import Protocol

from .config import PackageKind
from .errors import CommandFailedError, InstallError, MissingConditionError

logger = logging.getLogger(__name__)


class PackageManager(Protocol):
    name: str

    def list_installed(self) -> set[str]: ...

    def install(self, name: str, kind: PackageKind) -> None: ...


class HomebrewManager:
    """Queries and installs packages through the ``brew`` executable."""

    name = "brew"

    def __init__(self, executable: str = "brew") -> None:
        self.executable = executable

    def list_installed(self) -> set[str]:
        installed = set(self._run(["list", "--formula", "-1"]).split())
        installed.update(self._run(["list", "--cask", "-1"]).split())
        return installed

    def install(self, name: str, kind: PackageKind) -> None:
        args = ["install", name]
        if kind is PackageKind.CASK:
            if sys.platform != "darwin":
                raise MissingConditionError(name, "casks require macOS")
            args = ["install", "--cask", name]
        logger.info("Installing %s (%s)", name, kind.value)
        self._run(args)

    def _run(self, args: list[str]) -> str:
        command = [self.executable, *args]
        try:
            completed = subprocess.run(command, capture_output=True, text=True, check=False)
        except FileNotFoundError as exc:
            raise InstallError("Homebrew not found. Please install Homebrew from https://brew.sh") from exc
        except OSError as exc:
            raise InstallError(f"Failed to execute {self.executable}: {exc}") from exc

        if completed.returncode != 0:
            raise CommandFailedError(" ".join(command), completed.returncode, completed.stderr)
        return completed.stdout
