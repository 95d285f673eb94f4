"""Exception hierarchy for dotlink.

Every error raised by the reconciliation engine derives from ``DotlinkError``.
Errors that wrap a failing system call are raised with ``raise ... from exc`` so
the CLI can print the full causal chain.
"""

from __future__ import annotations

from pathlib import Path


class DotlinkError(RuntimeError):
    """Raised when dotlink encounters an unrecoverable state."""


class ConfigError(DotlinkError):
    """Raised when a configuration file cannot be located, parsed or merged."""


class ConfigNotFoundError(ConfigError):
    def __init__(self, path: Path | str, *, searched: tuple[Path, ...] = ()) -> None:
        self.path = Path(path)
        self.searched = searched
        message = f"Configuration file '{path}' does not exist"
        if searched:
            listing = "\n".join(f"  - {candidate}" for candidate in searched)
            message = f"Configuration file not found. Searched:\n{listing}"
        super().__init__(message)


class ConfigParseError(ConfigError):
    def __init__(self, path: Path | str, details: str) -> None:
        self.path = Path(path)
        self.details = details
        super().__init__(f"Failed to parse {path}: {details}")


class HostNotFoundError(ConfigError):
    def __init__(self, host: str) -> None:
        self.host = host
        super().__init__(f"Host '{host}' not found in config")


class ExpansionError(DotlinkError):
    """Raised when a path references an unset environment variable."""


class TemplateError(DotlinkError):
    """Raised when a template cannot be read or rendered."""


class LinkError(DotlinkError):
    """Base class for failures while materializing a dotfile."""


class SourceMissingError(LinkError):
    def __init__(self, source: Path) -> None:
        self.source = source
        super().__init__(f"Source file does not exist: {source}")


class LinkExistsError(LinkError):
    def __init__(self, target: Path) -> None:
        self.target = target
        super().__init__(f"Link target already exists: {target}")


class SymlinkFailedError(LinkError):
    def __init__(self, source: Path, target: Path, reason: str) -> None:
        self.source = source
        self.target = target
        self.reason = reason
        super().__init__(f"Failed to create symlink from {source} to {target}: {reason}")


class TargetIOError(LinkError):
    """Raised when backing up or removing an existing target fails."""

    def __init__(self, operation: str, path: Path) -> None:
        self.operation = operation
        self.path = path
        super().__init__(f"Failed to {operation}: {path}")


class InstallError(DotlinkError):
    """Base class for package installation failures."""


class CommandFailedError(InstallError):
    def __init__(self, command: str, exit_code: int, stderr: str) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"Command '{command}' failed with exit code {exit_code}: {stderr.strip()}")


class MissingConditionError(InstallError):
    def __init__(self, package: str, condition: str) -> None:
        self.package = package
        self.condition = condition
        super().__init__(f"Cannot install '{package}': condition '{condition}' not met")


class StateError(DotlinkError):
    """Base class for state file persistence failures."""


class StateSerializationError(StateError):
    def __init__(self, details: str) -> None:
        super().__init__(f"Failed to serialize state: {details}")


class StateDeserializationError(StateError):
    def __init__(self, path: Path, details: str) -> None:
        self.path = path
        super().__init__(f"Failed to deserialize state {path}: {details}")


class ApplyAbortedError(DotlinkError):
    """Raised when the caller stops an apply run after a resource failed."""

    def __init__(self, report: object, cause: BaseException) -> None:
        self.report = report
        super().__init__(f"Apply aborted: {cause}")
