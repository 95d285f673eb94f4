"""Conflict resolution for targets that are already occupied."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Protocol

from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt

logger = logging.getLogger(__name__)


class ConflictChoice(str, Enum):
    SKIP = "skip"
    OVERWRITE = "overwrite"
    BACKUP = "backup"


DEFAULT_UNATTENDED_CHOICE = ConflictChoice.BACKUP


@dataclass(frozen=True, slots=True)
class ConflictAnswer:
    """A decision for one conflict, optionally pinned for every later conflict."""

    choice: ConflictChoice
    apply_to_all: bool = False


class ConflictPrompt(Protocol):
    def ask(self, target: Path, source: Path) -> ConflictAnswer: ...


class FixedConflictPrompt:
    """Answers every conflict with the same choice, for unattended runs."""

    def __init__(self, choice: ConflictChoice = DEFAULT_UNATTENDED_CHOICE) -> None:
        self.choice = choice

    def ask(self, target: Path, source: Path) -> ConflictAnswer:
        return ConflictAnswer(self.choice)


class ScriptedConflictPrompt:
    """Replays a fixed sequence of answers and remembers which targets were asked about."""

    def __init__(self, answers: Iterable[ConflictAnswer | ConflictChoice]) -> None:
        self._answers = [
            answer if isinstance(answer, ConflictAnswer) else ConflictAnswer(answer) for answer in answers
        ]
        self.asked: list[Path] = []

    def ask(self, target: Path, source: Path) -> ConflictAnswer:
        self.asked.append(target)
        if not self._answers:
            raise LookupError(f"No scripted answer left for conflict at {target}")
        return self._answers.pop(0)


_CHOICE_KEYS = {
    "s": ConflictChoice.SKIP,
    "o": ConflictChoice.OVERWRITE,
    "b": ConflictChoice.BACKUP,
}


class RichConflictPrompt:
    """Asks on the terminal how to handle each conflict."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def ask(self, target: Path, source: Path) -> ConflictAnswer:
        if target.is_symlink():
            message = f"Target [bold]{escape(str(target))}[/bold] is a symlink to a different source"
        else:
            message = f"Target [bold]{escape(str(target))}[/bold] already exists"

        self.console.print(message)
        self.console.print(
            "  [s]kip - leave it, [o]verwrite - replace with a symlink, "
            "[b]ackup - keep a copy, then link, [a]pply to all remaining",
            markup=False,
        )
        key = Prompt.ask("How do you want to proceed?", choices=["s", "o", "b", "a"], default="s", console=self.console)
        if key != "a":
            return ConflictAnswer(_CHOICE_KEYS[key])

        key = Prompt.ask(
            "Action for all remaining conflicts",
            choices=["s", "o", "b"],
            default="b",
            console=self.console,
        )
        return ConflictAnswer(_CHOICE_KEYS[key], apply_to_all=True)


class ConflictPolicy:
    """Supplies conflict decisions for one apply run.

    Once an answer pins a choice, that choice is used for every later conflict in the
    run without asking again.
    """

    def __init__(self, prompt: ConflictPrompt, pinned: ConflictChoice | None = None) -> None:
        self.prompt = prompt
        self.pinned = pinned

    @classmethod
    def unattended(cls, choice: ConflictChoice = DEFAULT_UNATTENDED_CHOICE) -> "ConflictPolicy":
        return cls(FixedConflictPrompt(choice), pinned=choice)

    def decide(self, target: Path, source: Path) -> ConflictChoice:
        if self.pinned is not None:
            return self.pinned

        answer = self.prompt.ask(target, source)
        if answer.apply_to_all:
            logger.debug("Pinning conflict choice '%s' for the rest of the run", answer.choice.value)
            self.pinned = answer.choice
        return answer.choice
