"""TOML configuration loading, host merging and role filtering for dotlink."""

from __future__ import annotations

import logging
import socket
import tomllib
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Collection, Dict, Iterable, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError, ConfigNotFoundError, ConfigParseError, HostNotFoundError
from .paths import DEFAULT_CONFIG_FILENAME, PathProvider

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIXES = (".tmpl", ".hbs", ".j2")


def should_apply_for_roles(
    only_roles: Collection[str] | None,
    skip_roles: Collection[str] | None,
    host_roles: Iterable[str],
) -> bool:
    """Return ``True`` when a resource applies to a host with ``host_roles``.

    ``skip_roles`` always wins over ``only_roles``. An empty ``only_roles`` places no
    restriction on the host.
    """

    roles = set(host_roles)
    if skip_roles and roles.intersection(skip_roles):
        return False
    if only_roles:
        return bool(roles.intersection(only_roles))
    return True


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class _RoleFiltered(_Section):
    only_roles: tuple[str, ...] | None = None
    skip_roles: tuple[str, ...] | None = None

    def applies_to(self, host_roles: Iterable[str]) -> bool:
        return should_apply_for_roles(self.only_roles, self.skip_roles, host_roles)


class Dotfile(_RoleFiltered):
    """A file or directory linked from ``source`` to ``target``."""

    source: str
    target: str
    template: bool = False

    @property
    def is_template(self) -> bool:
        return self.template or self.source.endswith(TEMPLATE_SUFFIXES)

    @property
    def rendered_name(self) -> str:
        """File name used for the rendered copy in the template cache."""

        name = Path(self.source).name
        for suffix in TEMPLATE_SUFFIXES:
            if name.endswith(suffix) and len(name) > len(suffix):
                return name[: -len(suffix)]
        return name


class PackageKind(str, Enum):
    FORMULA = "formula"
    CASK = "cask"


class Package(_RoleFiltered):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    name: str
    kind: PackageKind = Field(default=PackageKind.FORMULA, alias="type")


class Packages(_Section):
    """Package declarations in either the object form or the shorthand lists."""

    homebrew: tuple[Package, ...] = ()
    brew: tuple[str, ...] = ()
    cask: tuple[str, ...] = ()

    def normalized(self) -> tuple[Package, ...]:
        packages = list(self.homebrew)
        packages.extend(Package(name=name, kind=PackageKind.FORMULA) for name in self.brew)
        packages.extend(Package(name=name, kind=PackageKind.CASK) for name in self.cask)
        return tuple(packages)


class FailureMode(str, Enum):
    CONTINUE = "continue"
    FAIL = "fail"


class _HookBase(_RoleFiltered):
    @property
    def display_name(self) -> str:
        return self.type  # type: ignore[attr-defined]

    @property
    def fails_run(self) -> bool:
        """Whether a failure of this hook should fail the apply step."""

        return False


class CargoPackage(_Section):
    name: str
    git: str
    bin: str | None = None


class RustupHook(_HookBase):
    type: Literal["rustup"]
    toolchains: tuple[str, ...] = ()
    components: tuple[str, ...] = ()
    targets: tuple[str, ...] = ()
    default: str | None = None


class CargoInstallHook(_HookBase):
    type: Literal["cargo-install"]
    packages: tuple[CargoPackage, ...] = ()


class MiseHook(_HookBase):
    type: Literal["mise"]


class PnpmGlobalHook(_HookBase):
    type: Literal["pnpm-global"]
    packages: tuple[str, ...] = ()


class UvPythonHook(_HookBase):
    type: Literal["uv-python"]
    version: str
    symlinks: Dict[str, str] = Field(default_factory=dict)


class CommandHook(_HookBase):
    type: Literal["command"]
    name: str
    command: str
    on_failure: FailureMode = FailureMode.CONTINUE

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def fails_run(self) -> bool:
        return self.on_failure is FailureMode.FAIL


Hook = Annotated[
    Union[RustupHook, CargoInstallHook, MiseHook, PnpmGlobalHook, UvPythonHook, CommandHook],
    Field(discriminator="type"),
]


class SecretMetadata(_Section):
    description: str | None = None
    env_var: str | None = None


class ToolVersions(_Section):
    tools: Dict[str, str] = Field(default_factory=dict)


class HostConfig(_Section):
    """Overlay applied on top of the base configuration for one machine."""

    inherits: str | None = None
    roles: tuple[str, ...] = ()
    variables: Dict[str, str] = Field(default_factory=dict)
    dotfiles: tuple[Dotfile, ...] = ()
    packages: Packages = Field(default_factory=Packages)
    hooks: tuple[Hook, ...] = ()
    secrets: Dict[str, SecretMetadata] = Field(default_factory=dict)
    mise: ToolVersions = Field(default_factory=ToolVersions)


class MergedConfig(_Section):
    """The base configuration with at most one host folded in."""

    host_name: str | None = None
    roles: tuple[str, ...] = ()
    base_dir: Path
    variables: Dict[str, str] = Field(default_factory=dict)
    dotfiles: tuple[Dotfile, ...] = ()
    packages: tuple[Package, ...] = ()
    hooks: tuple[Hook, ...] = ()
    secrets: Dict[str, SecretMetadata] = Field(default_factory=dict)
    tools: Dict[str, str] = Field(default_factory=dict)

    def filtered(self) -> "MergedConfig":
        """Return a copy keeping only the resources that apply to this host's roles."""

        return self.model_copy(
            update={
                "dotfiles": tuple(item for item in self.dotfiles if item.applies_to(self.roles)),
                "packages": tuple(item for item in self.packages if item.applies_to(self.roles)),
                "hooks": tuple(item for item in self.hooks if item.applies_to(self.roles)),
            }
        )


class Config(_Section):
    """Fully parsed configuration file."""

    config_path: Path | None = None
    base_dir: Path
    variables: Dict[str, str] = Field(default_factory=dict)
    dotfiles: tuple[Dotfile, ...] = ()
    packages: Packages = Field(default_factory=Packages)
    hosts: Dict[str, HostConfig] = Field(default_factory=dict)
    hooks: tuple[Hook, ...] = ()
    secrets: Dict[str, SecretMetadata] = Field(default_factory=dict)
    mise: ToolVersions = Field(default_factory=ToolVersions)

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path, config_path: Path | None = None) -> "Config":
        source = config_path or base_dir
        payload = dict(raw)
        for reserved in ("config_path", "base_dir"):
            if reserved in payload:
                raise ConfigParseError(source, f"'{reserved}' is not a configuration key")
        try:
            return cls.model_validate({**payload, "config_path": config_path, "base_dir": base_dir})
        except ValidationError as exc:
            raise ConfigParseError(source, _format_validation_error(exc)) from exc

    def host_names(self) -> list[str]:
        return sorted(self.hosts)

    def base(self) -> MergedConfig:
        return MergedConfig(
            base_dir=self.base_dir,
            variables=dict(self.variables),
            dotfiles=self.dotfiles,
            packages=self.packages.normalized(),
            hooks=self.hooks,
            secrets=dict(self.secrets),
            tools=dict(self.mise.tools),
        )

    def resolve(self, host_name: str | None = None) -> MergedConfig:
        """Merge the host to use on this machine, if the file declares any hosts."""

        if not self.hosts:
            return self.base()
        return merge(self, host_name or detect_hostname())


def merge(config: Config, host_name: str) -> MergedConfig:
    """Fold ``host_name`` (and the hosts it inherits from) into the base config.

    Maps merge key by key with the host winning; lists append host entries after
    the base entries.
    """

    merged = config.base()
    variables = dict(merged.variables)
    dotfiles = list(merged.dotfiles)
    packages = list(merged.packages)
    hooks = list(merged.hooks)
    secrets = dict(merged.secrets)
    tools = dict(merged.tools)
    roles: list[str] = []

    for host in _inheritance_chain(config, host_name):
        variables.update(host.variables)
        dotfiles.extend(host.dotfiles)
        packages.extend(host.packages.normalized())
        hooks.extend(host.hooks)
        secrets.update(host.secrets)
        tools.update(host.mise.tools)
        roles.extend(role for role in host.roles if role not in roles)

    logger.debug("Merged host '%s' with roles %s", host_name, roles)
    return merged.model_copy(
        update={
            "host_name": host_name,
            "roles": tuple(roles),
            "variables": variables,
            "dotfiles": tuple(dotfiles),
            "packages": tuple(packages),
            "hooks": tuple(hooks),
            "secrets": secrets,
            "tools": tools,
        }
    )


def _inheritance_chain(config: Config, host_name: str) -> list[HostConfig]:
    """Return ``host_name`` and its ancestors, outermost ancestor first."""

    chain: list[HostConfig] = []
    seen: list[str] = []
    current: str | None = host_name
    while current is not None:
        if current in seen:
            cycle = " -> ".join([*seen, current])
            raise ConfigParseError(config.config_path or config.base_dir, f"host inheritance cycle: {cycle}")
        host = config.hosts.get(current)
        if host is None:
            raise HostNotFoundError(current)
        seen.append(current)
        chain.append(host)
        current = host.inherits
    chain.reverse()
    return chain


def detect_hostname() -> str:
    return socket.gethostname() or "unknown"


def loads_config(text: str, *, base_dir: Path) -> Config:
    """Parse configuration from a TOML string."""

    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigParseError(base_dir, f"TOML parse error: {exc}") from exc
    return Config.from_raw(data, base_dir=base_dir)


def load_config(path: Path | None = None, *, paths: PathProvider | None = None) -> Config:
    """Load and validate a configuration file.

    Args:
        path: Optional path to the TOML file, or to a directory containing
            ``dotlink.toml``. When omitted, ``./dotlink.toml`` and then
            ``<config home>/dotlink/config.toml`` are tried.
        paths: Base directory provider used for the fallback location.
    """

    config_path = _resolve_config_path(path, paths or PathProvider.from_environment())
    logger.debug("Loading configuration from %s", config_path)

    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigParseError(config_path, f"TOML parse error: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file: {config_path}") from exc

    return Config.from_raw(data, base_dir=config_path.parent, config_path=config_path)


def _resolve_config_path(path: Path | None, paths: PathProvider) -> Path:
    if path is None:
        candidates = (Path.cwd() / DEFAULT_CONFIG_FILENAME, paths.default_config_path)
        for candidate in candidates:
            if candidate.is_file():
                return candidate.resolve(strict=False)
        raise ConfigNotFoundError(candidates[0], searched=candidates)

    path = Path(path).expanduser()
    if not path.exists():
        raise ConfigNotFoundError(path)
    if path.is_dir():
        candidate = path / DEFAULT_CONFIG_FILENAME
        if not candidate.exists():
            raise ConfigNotFoundError(candidate)
        path = candidate

    return path.resolve(strict=False)


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error["loc"])
        parts.append(f"{location}: {error['msg']}" if location else error["msg"])
    return "; ".join(parts)
