from __future__ import annotations

from pathlib import Path

import pytest

from dotlink.errors import TemplateError
from dotlink.template import HostContext, JinjaRenderer, system_variables

SYSTEM = {"hostname": "box", "username": "ada", "os": "darwin", "arch": "arm64"}


@pytest.fixture
def renderer() -> JinjaRenderer:
    return JinjaRenderer(system=SYSTEM)


def test_renders_variables_system_and_host(renderer: JinjaRenderer) -> None:
    text = "{{ variables.email }} {{ system.username }}@{{ system.os }} {{ host.name }}\n"

    rendered = renderer.render(text, {"email": "ada@example.com"}, HostContext(name="laptop"))

    assert rendered == "ada@example.com ada@darwin laptop\n"


def test_roles_are_available_for_conditionals(renderer: JinjaRenderer) -> None:
    text = "{% if 'work' in host.roles %}work{% else %}home{% endif %}"

    assert renderer.render(text, {}, HostContext(name="a", roles=("work",))) == "work"
    assert renderer.render(text, {}, HostContext(name="a")) == "home"


def test_undefined_variable_is_an_error(renderer: JinjaRenderer) -> None:
    with pytest.raises(TemplateError, match="Template variable not found"):
        renderer.render("{{ nope }}", {}, HostContext())


def test_syntax_error_is_reported(renderer: JinjaRenderer) -> None:
    with pytest.raises(TemplateError, match="syntax error"):
        renderer.render("{% if %}", {}, HostContext())


def test_render_file_reads_from_disk(renderer: JinjaRenderer, tmp_path: Path) -> None:
    template = tmp_path / "motd.j2"
    template.write_text("hi {{ variables.who }}")

    assert renderer.render_file(template, {"who": "there"}, HostContext()) == "hi there"


def test_render_file_missing(renderer: JinjaRenderer, tmp_path: Path) -> None:
    with pytest.raises(TemplateError, match="Failed to read template"):
        renderer.render_file(tmp_path / "missing.j2", {}, HostContext())


def test_system_variables_keys() -> None:
    assert set(system_variables()) == {"hostname", "username", "os", "arch"}
