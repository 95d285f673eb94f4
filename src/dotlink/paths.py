"""Base directory lookups and shell-style path expansion."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path

from .errors import ExpansionError

APP_NAME = "dotlink"
DEFAULT_CONFIG_FILENAME = "dotlink.toml"

_ENV_PATTERN = re.compile(r"\$(?:\{(?P<braced>[^}]*)\}|(?P<bare>[A-Za-z0-9_]+))")


@dataclass(frozen=True, slots=True)
class PathProvider:
    """Locates the directories dotlink reads from and writes to.

    Tests build one rooted in a temporary directory instead of the real home.
    """

    home: Path
    config_home: Path

    @classmethod
    def from_environment(cls) -> "PathProvider":
        home = Path.home()
        xdg = os.environ.get("XDG_CONFIG_HOME")
        config_home = Path(xdg) if xdg else home / ".config"
        return cls(home=home, config_home=config_home)

    @property
    def data_dir(self) -> Path:
        return self.home / f".{APP_NAME}"

    @property
    def render_cache_dir(self) -> Path:
        """Private directory holding rendered template output."""

        return self.data_dir / "rendered"

    @property
    def default_state_path(self) -> Path:
        return self.config_home / APP_NAME / "state.toml"

    @property
    def default_config_path(self) -> Path:
        return self.config_home / APP_NAME / "config.toml"

    def expand(self, raw: str | os.PathLike[str], *, base_dir: Path | None = None) -> Path:
        return expand_path(raw, home=self.home, base_dir=base_dir)


def expand_vars(text: str) -> str:
    """Substitute ``$VAR`` and ``${VAR}`` from the environment.

    Unlike :func:`os.path.expandvars`, a reference to an unset variable is an error.
    """

    def _replace(match: re.Match[str]) -> str:
        name = match.group("braced")
        if name is None:
            name = match.group("bare")
        if not name:
            return match.group(0)
        try:
            return os.environ[name]
        except KeyError:
            raise ExpansionError(f"Environment variable '{name}' is not set") from None

    return _ENV_PATTERN.sub(_replace, text)


def expand_user(text: str, home: Path) -> str:
    """Expand a leading ``~`` or ``~/`` to ``home``.

    ``~user`` forms are rejected since only the configured home is known.
    """

    if text == "~":
        return str(home)
    if text.startswith("~/"):
        return f"{home}/{text[2:]}"
    if text.startswith("~"):
        raise ExpansionError(f"'{text.split('/', 1)[0]}' home directories are not supported; use '~/'")
    return text


def expand_path(
    raw: str | os.PathLike[str],
    *,
    home: Path | None = None,
    base_dir: Path | None = None,
) -> Path:
    """Return an absolute ``Path`` after expanding ``~`` and environment variables.

    Relative results are anchored at ``base_dir`` (the current directory when omitted).
    """

    text = os.fspath(raw)
    try:
        expanded = expand_vars(expand_user(text, home or Path.home()))
    except ExpansionError as exc:
        raise ExpansionError(f"Failed to expand path '{text}': {exc}") from exc

    path = Path(expanded)
    if path.is_absolute():
        return path
    return (base_dir or Path.cwd()) / path
