from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from dotlink.config import Dotfile, MergedConfig
from dotlink.conflict import ConflictAnswer, ConflictChoice, ConflictPolicy, ScriptedConflictPrompt
from dotlink.errors import SourceMissingError, TemplateError
from dotlink.filesystem import restore_entry, symlink_points_to
from dotlink.linker import LinkManager
from dotlink.models import ApplyAction, DotfileRecord
from dotlink.paths import PathProvider
from dotlink.state import State
from dotlink.template import JinjaRenderer


def _linker(paths: PathProvider, *answers: ConflictAnswer | ConflictChoice) -> tuple[LinkManager, ScriptedConflictPrompt]:
    prompt = ScriptedConflictPrompt(answers)
    renderer = JinjaRenderer(system={"hostname": "box", "username": "me", "os": "linux", "arch": "x86_64"})
    return LinkManager(paths, ConflictPolicy(prompt), renderer), prompt


def _source(dotfiles_dir: Path, name: str = "zshrc", content: str = "new\n") -> Path:
    source = dotfiles_dir / name
    source.write_text(content)
    return source


def test_link_creates_absolute_symlink(paths: PathProvider, dotfiles_dir: Path) -> None:
    source = _source(dotfiles_dir)
    target = paths.home / ".config" / "zsh" / ".zshrc"
    linker, prompt = _linker(paths)
    state = State()

    outcome = linker.link(source, target, state)

    assert outcome.action is ApplyAction.LINKED
    assert target.is_symlink()
    assert Path(target.readlink()) == source
    assert state.dotfiles == [DotfileRecord(source=source, target=target)]
    assert prompt.asked == []


def test_conflict_skip_leaves_target(paths: PathProvider, dotfiles_dir: Path) -> None:
    source = _source(dotfiles_dir)
    target = paths.home / ".zshrc"
    target.write_text("old\n")
    linker, prompt = _linker(paths, ConflictChoice.SKIP)
    state = State()

    outcome = linker.link(source, target, state)

    assert outcome.action is ApplyAction.SKIPPED
    assert target.read_text() == "old\n"
    assert not target.is_symlink()
    assert state.is_empty
    assert prompt.asked == [target]


def test_conflict_overwrite_discards_target(paths: PathProvider, dotfiles_dir: Path) -> None:
    source = _source(dotfiles_dir)
    target = paths.home / ".zshrc"
    target.write_text("old\n")
    linker, _ = _linker(paths, ConflictChoice.OVERWRITE)
    state = State()

    linker.link(source, target, state)

    assert symlink_points_to(target, source)
    assert state.dotfiles[0].backup_path is None
    assert list(paths.home.glob(".zshrc.backup.*")) == []


def test_conflict_backup_keeps_copy(paths: PathProvider, dotfiles_dir: Path) -> None:
    source = _source(dotfiles_dir)
    target = paths.home / ".zshrc"
    target.write_text("old\n")
    linker, _ = _linker(paths, ConflictChoice.BACKUP)
    state = State()

    outcome = linker.link(source, target, state)

    backup = state.dotfiles[0].backup_path
    assert outcome.action is ApplyAction.LINKED
    assert backup is not None
    assert backup.name.startswith(".zshrc.backup.")
    assert backup.read_text() == "old\n"
    assert target.read_text() == "new\n"


def test_apply_to_all_pins_choice(paths: PathProvider, dotfiles_dir: Path) -> None:
    linker, prompt = _linker(paths, ConflictAnswer(ConflictChoice.BACKUP, apply_to_all=True))
    state = State()
    targets = []
    for name in ("a", "b", "c"):
        source = _source(dotfiles_dir, name)
        target = paths.home / f".{name}"
        target.write_text(f"old {name}\n")
        targets.append(target)
        linker.link(source, target, state)

    assert prompt.asked == [targets[0]]
    assert all(record.backup_path is not None for record in state.dotfiles)
    assert all(target.is_symlink() for target in targets)


def test_answers_apply_positionally(paths: PathProvider, dotfiles_dir: Path) -> None:
    linker, prompt = _linker(paths, ConflictChoice.SKIP, ConflictChoice.OVERWRITE)
    state = State()
    first = paths.home / ".first"
    second = paths.home / ".second"
    first.write_text("keep")
    second.write_text("replace")

    linker.link(_source(dotfiles_dir, "first"), first, state)
    linker.link(_source(dotfiles_dir, "second"), second, state)

    assert first.read_text() == "keep" and not first.is_symlink()
    assert second.is_symlink()
    assert prompt.asked == [first, second]


def test_existing_correct_link_is_not_a_conflict(paths: PathProvider, dotfiles_dir: Path) -> None:
    source = _source(dotfiles_dir)
    target = paths.home / ".zshrc"
    target.symlink_to(source)
    linker, prompt = _linker(paths)
    state = State()

    outcome = linker.link(source, target, state)

    assert outcome.action is ApplyAction.UNCHANGED
    assert prompt.asked == []
    assert state.dotfile_for(target) == DotfileRecord(source=source, target=target)


def test_relink_keeps_earlier_backup(paths: PathProvider, dotfiles_dir: Path) -> None:
    old_source = _source(dotfiles_dir, "zshrc-old")
    new_source = _source(dotfiles_dir, "zshrc-new")
    target = paths.home / ".zshrc"
    earlier_backup = paths.home / ".zshrc.backup.20240101_000000"
    earlier_backup.write_text("original\n")
    target.symlink_to(old_source)
    state = State(dotfiles=[DotfileRecord(old_source, target, earlier_backup)])
    linker, prompt = _linker(paths)

    outcome = linker.link(new_source, target, state)

    assert outcome.action is ApplyAction.LINKED
    assert prompt.asked == []
    assert symlink_points_to(target, new_source)
    assert state.dotfiles == [DotfileRecord(new_source, target, earlier_backup)]


def test_backup_of_real_directory_moves_it(paths: PathProvider, dotfiles_dir: Path) -> None:
    source = dotfiles_dir / "nvim"
    source.mkdir()
    (source / "init.lua").write_text("-- new\n")
    target = paths.home / ".config" / "nvim"
    target.mkdir(parents=True)
    (target / "init.lua").write_text("-- old\n")
    linker, _ = _linker(paths, ConflictChoice.BACKUP)
    state = State()

    linker.link(source, target, state)

    backup = state.dotfiles[0].backup_path
    assert backup is not None
    assert (backup / "init.lua").read_text() == "-- old\n"
    assert (target / "init.lua").read_text() == "-- new\n"


def test_dangling_link_is_replaced_without_backup(paths: PathProvider, dotfiles_dir: Path) -> None:
    source = _source(dotfiles_dir)
    target = paths.home / ".zshrc"
    target.symlink_to(dotfiles_dir / "missing")
    linker, prompt = _linker(paths, ConflictChoice.BACKUP)
    state = State()

    linker.link(source, target, state)

    assert prompt.asked == [target]
    assert symlink_points_to(target, source)
    assert state.dotfiles[0].backup_path is None


def test_missing_source_raises(paths: PathProvider, dotfiles_dir: Path) -> None:
    linker, _ = _linker(paths)

    with pytest.raises(SourceMissingError):
        linker.link(dotfiles_dir / "missing", paths.home / ".missing", State())


def test_template_dotfile_links_rendered_copy(paths: PathProvider, dotfiles_dir: Path) -> None:
    (dotfiles_dir / "gitconfig.tmpl").write_text("[user]\n  name = {{ variables.name }}\n  host = {{ host.name }}\n")
    config = MergedConfig(base_dir=dotfiles_dir, host_name="laptop", variables={"name": "Ada"})
    dotfile = Dotfile(source="gitconfig.tmpl", target="~/.gitconfig")
    linker, _ = _linker(paths)
    state = State()

    outcome = linker.apply_dotfile(dotfile, config, state)

    rendered = paths.render_cache_dir / "gitconfig"
    target = paths.home / ".gitconfig"
    assert outcome.action is ApplyAction.LINKED
    assert rendered.read_text() == "[user]\n  name = Ada\n  host = laptop\n"
    assert symlink_points_to(target, rendered)
    assert state.dotfiles[0] == DotfileRecord(
        source=dotfiles_dir / "gitconfig.tmpl",
        target=target,
        rendered_path=rendered,
    )


def test_template_with_unknown_variable_fails(paths: PathProvider, dotfiles_dir: Path) -> None:
    (dotfiles_dir / "bad.tmpl").write_text("{{ variables.missing }}")
    config = MergedConfig(base_dir=dotfiles_dir)
    linker, _ = _linker(paths)

    with pytest.raises(TemplateError, match="Template variable not found"):
        linker.apply_dotfile(Dotfile(source="bad.tmpl", target="~/.bad"), config, State())

    assert not (paths.home / ".bad").exists()


def test_rerender_with_new_variables_reports_rendered(paths: PathProvider, dotfiles_dir: Path) -> None:
    (dotfiles_dir / "motd.j2").write_text("{{ variables.greeting }}\n")
    dotfile = Dotfile(source="motd.j2", target="~/.motd")
    linker, _ = _linker(paths)
    state = State()

    first = linker.apply_dotfile(dotfile, MergedConfig(base_dir=dotfiles_dir, variables={"greeting": "hi"}), state)
    same = linker.apply_dotfile(dotfile, MergedConfig(base_dir=dotfiles_dir, variables={"greeting": "hi"}), state)
    changed = linker.apply_dotfile(dotfile, MergedConfig(base_dir=dotfiles_dir, variables={"greeting": "yo"}), state)

    assert [first.action, same.action, changed.action] == [
        ApplyAction.LINKED,
        ApplyAction.UNCHANGED,
        ApplyAction.RENDERED,
    ]
    assert (paths.home / ".motd").read_text() == "yo\n"


class _FrozenClock(datetime):
    @classmethod
    def now(cls, tz=None):  # type: ignore[override]
        return cls(2024, 3, 9, 7, 5, 1)


def test_backup_keeps_earlier_backup_with_same_timestamp(
    monkeypatch: pytest.MonkeyPatch, paths: PathProvider, dotfiles_dir: Path
) -> None:
    monkeypatch.setattr("dotlink.filesystem.datetime", _FrozenClock)
    source = _source(dotfiles_dir, "vimrc")
    target = paths.home / ".vimrc"
    target.write_text("current\n")
    earlier = paths.home / ".vimrc.backup.20240309_070501"
    earlier.write_text("earlier backup\n")
    linker, _ = _linker(paths, ConflictChoice.BACKUP)
    state = State()

    linker.link(source, target, state)

    backup = state.dotfiles[0].backup_path
    assert backup == paths.home / ".vimrc.backup.20240309_070501.1"
    assert backup.read_text() == "current\n"
    assert earlier.read_text() == "earlier backup\n"


def test_directory_backup_twice_in_the_same_second(
    monkeypatch: pytest.MonkeyPatch, paths: PathProvider, dotfiles_dir: Path
) -> None:
    monkeypatch.setattr("dotlink.filesystem.datetime", _FrozenClock)
    source = dotfiles_dir / "nvim"
    source.mkdir()
    (source / "init.lua").write_text("-- new\n")
    target = paths.home / ".config" / "nvim"
    target.mkdir(parents=True)
    (target / "init.lua").write_text("-- old\n")
    linker, _ = _linker(paths, ConflictChoice.BACKUP, ConflictChoice.BACKUP)

    first_state = State()
    linker.link(source, target, first_state)
    first_backup = first_state.dotfiles[0].backup_path
    assert first_backup is not None
    target.unlink()
    restore_entry(first_backup, target)

    second_state = State()
    outcome = linker.link(source, target, second_state)

    second_backup = second_state.dotfiles[0].backup_path
    assert outcome.action is ApplyAction.LINKED
    assert second_backup is not None and second_backup != first_backup
    assert (first_backup / "init.lua").read_text() == "-- old\n"
    assert (second_backup / "init.lua").read_text() == "-- old\n"
    assert symlink_points_to(target, source)
