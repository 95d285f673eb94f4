from __future__ import annotations

from pathlib import Path

import pytest

from dotlink.config import PackageKind
from dotlink.errors import CommandFailedError
from dotlink.paths import PathProvider


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    return home


@pytest.fixture
def paths(fake_home: Path) -> PathProvider:
    return PathProvider(home=fake_home, config_home=fake_home / ".config")


@pytest.fixture
def dotfiles_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "dotfiles"
    directory.mkdir()
    return directory


class FakePackageManager:
    """In-memory package manager recording install calls."""

    name = "brew"

    def __init__(self, installed: set[str] | None = None, failing: set[str] | None = None) -> None:
        self.installed = set(installed or ())
        self.failing = set(failing or ())
        self.install_calls: list[tuple[str, PackageKind]] = []
        self.list_calls = 0

    def list_installed(self) -> set[str]:
        self.list_calls += 1
        return set(self.installed)

    def install(self, name: str, kind: PackageKind) -> None:
        self.install_calls.append((name, kind))
        if name in self.failing:
            raise CommandFailedError(f"brew install {name}", 1, "no such formula")
        self.installed.add(name)


@pytest.fixture
def package_manager() -> FakePackageManager:
    return FakePackageManager()
