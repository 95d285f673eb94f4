"""Template rendering for dotfiles marked as templates."""

from __future__ import annotations

import getpass
import logging
import platform
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Protocol

from jinja2 import Environment, StrictUndefined, TemplateSyntaxError, UndefinedError

from .errors import TemplateError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class HostContext:
    """Host details exposed to templates as ``host``."""

    name: str = "default"
    roles: tuple[str, ...] = field(default_factory=tuple)


class TemplateRenderer(Protocol):
    def render(self, template_text: str, variables: Mapping[str, str], host: HostContext) -> str: ...


def system_variables() -> dict[str, str]:
    """Facts about the current machine exposed to templates as ``system``."""

    try:
        username = getpass.getuser()
    except (KeyError, OSError):
        username = "unknown"
    return {
        "hostname": socket.gethostname() or "unknown",
        "username": username,
        "os": platform.system().lower() or "unknown",
        "arch": platform.machine() or "unknown",
    }


class JinjaRenderer:
    """Render templates with jinja2, failing on any undefined name.

    Templates see ``variables`` (the merged config variables), ``system`` and ``host``.
    """

    def __init__(self, system: Mapping[str, str] | None = None) -> None:
        self._env = Environment(undefined=StrictUndefined, keep_trailing_newline=True, autoescape=False)
        self._system = dict(system) if system is not None else system_variables()

    def render(self, template_text: str, variables: Mapping[str, str], host: HostContext) -> str:
        context = {
            "variables": dict(variables),
            "system": self._system,
            "host": {"name": host.name, "roles": list(host.roles)},
        }
        try:
            return self._env.from_string(template_text).render(context)
        except UndefinedError as exc:
            raise TemplateError(f"Template variable not found: {exc.message}") from exc
        except TemplateSyntaxError as exc:
            raise TemplateError(f"Template syntax error on line {exc.lineno}: {exc.message}") from exc

    def render_file(self, path: Path, variables: Mapping[str, str], host: HostContext) -> str:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise TemplateError(f"Failed to read template: {path}") from exc
        logger.debug("Rendering template %s", path)
        return self.render(text, variables, host)
