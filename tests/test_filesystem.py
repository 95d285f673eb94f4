from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path

import pytest

from dotlink.filesystem import (
    backup_entry,
    backup_path_for,
    ensure_parent,
    link_destination,
    occupied,
    remove_path,
    restore_entry,
    symlink_points_to,
)


def test_backup_path_uses_timestamp_suffix(tmp_path: Path) -> None:
    target = tmp_path / ".zshrc"

    backup = backup_path_for(target, now=datetime(2024, 3, 9, 7, 5, 1))

    assert backup == tmp_path / ".zshrc.backup.20240309_070501"


def test_backup_entry_copies_file(tmp_path: Path) -> None:
    target = tmp_path / "file.txt"
    target.write_text("original\n")

    backup = backup_entry(target)

    assert backup.read_text() == "original\n"
    assert target.read_text() == "original\n"


def test_backup_entry_renames_real_directory(tmp_path: Path) -> None:
    target = tmp_path / "nvim"
    (target / "lua").mkdir(parents=True)
    (target / "lua" / "init.lua").write_text("-- config\n")

    backup = backup_entry(target)

    assert not target.exists()
    assert (backup / "lua" / "init.lua").read_text() == "-- config\n"


def test_backup_entry_never_reuses_an_existing_backup(tmp_path: Path) -> None:
    stamp = datetime(2024, 3, 9, 7, 5, 1)
    target = tmp_path / ".vimrc"
    target.write_text("current\n")
    earlier = tmp_path / ".vimrc.backup.20240309_070501"
    earlier.write_text("earlier backup\n")

    first = backup_entry(target, now=stamp)
    second = backup_entry(target, now=stamp)

    assert earlier.read_text() == "earlier backup\n"
    assert first == tmp_path / ".vimrc.backup.20240309_070501.1"
    assert second == tmp_path / ".vimrc.backup.20240309_070501.2"
    assert first.read_text() == second.read_text() == "current\n"


def test_backup_entry_renames_directory_beside_existing_backup(tmp_path: Path) -> None:
    stamp = datetime(2024, 3, 9, 7, 5, 1)
    target = tmp_path / "nvim"
    target.mkdir()
    (target / "init.lua").write_text("-- current\n")
    earlier = tmp_path / "nvim.backup.20240309_070501"
    earlier.mkdir()
    (earlier / "init.lua").write_text("-- earlier\n")

    backup = backup_entry(target, now=stamp)

    assert backup == tmp_path / "nvim.backup.20240309_070501.1"
    assert (backup / "init.lua").read_text() == "-- current\n"
    assert (earlier / "init.lua").read_text() == "-- earlier\n"
    assert not target.exists()


def test_backup_entry_copies_symlinked_directory(tmp_path: Path) -> None:
    real = tmp_path / "real"
    real.mkdir()
    (real / "data").write_text("x")
    target = tmp_path / "link"
    target.symlink_to(real)

    backup = backup_entry(target)

    assert target.is_symlink()
    assert not backup.is_symlink()
    assert (backup / "data").read_text() == "x"


def test_restore_entry_file_and_directory(tmp_path: Path) -> None:
    file_backup = tmp_path / "f.backup"
    file_backup.write_text("content")
    dir_backup = tmp_path / "d.backup"
    (dir_backup / "sub").mkdir(parents=True)
    (dir_backup / "sub" / "x").write_text("nested")

    restore_entry(file_backup, tmp_path / "restored" / "f")
    restore_entry(dir_backup, tmp_path / "restored" / "d")

    assert (tmp_path / "restored" / "f").read_text() == "content"
    assert (tmp_path / "restored" / "d" / "sub" / "x").read_text() == "nested"


def test_link_destination_resolves_relative_links(tmp_path: Path) -> None:
    source = tmp_path / "dotfiles" / "vimrc"
    source.parent.mkdir()
    source.write_text("set nu\n")
    link = tmp_path / ".vimrc"
    os.symlink(os.path.join("dotfiles", "vimrc"), link)

    assert link_destination(link) == source.resolve()
    assert symlink_points_to(link, source)


def test_symlink_points_to_rejects_regular_file(tmp_path: Path) -> None:
    regular = tmp_path / "file"
    regular.write_text("")

    assert not symlink_points_to(regular, regular)


def test_occupied_sees_dangling_symlink(tmp_path: Path) -> None:
    link = tmp_path / "dangling"
    link.symlink_to(tmp_path / "missing")

    assert not link.exists()
    assert occupied(link)


def test_ensure_parent(tmp_path: Path) -> None:
    target = tmp_path / "deep" / "file.txt"
    ensure_parent(target)
    assert target.parent.exists()


def test_remove_path_directory(tmp_path: Path) -> None:
    directory = tmp_path / "dir"
    (directory / "child").mkdir(parents=True)
    (directory / "child" / "data").write_text("x")

    remove_path(directory)
    assert not directory.exists()


def test_remove_path_symlink_to_directory_keeps_target(tmp_path: Path) -> None:
    real = tmp_path / "real"
    real.mkdir()
    link = tmp_path / "link"
    link.symlink_to(real)

    remove_path(link)

    assert not occupied(link)
    assert real.is_dir()


@pytest.mark.usefixtures("fake_home")
def test_remove_path_missing_noop(tmp_path: Path) -> None:
    missing = tmp_path / "missing"
    remove_path(missing)
