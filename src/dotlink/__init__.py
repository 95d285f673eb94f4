"""Core package for the dotlink project."""

from .cli import app, run
from .config import Config, Dotfile, HostConfig, MergedConfig, Package, load_config, loads_config
from .conflict import ConflictChoice, ConflictPolicy
from .errors import DotlinkError
from .manager import DotlinkManager
from .models import (
    ApplyAction,
    ApplyReport,
    ApplyResult,
    Change,
    ChangeKind,
    StatusEntry,
    StatusReport,
    StatusState,
    UndoReport,
)
from .paths import PathProvider
from .state import State, StateStore

__all__ = [
    "Config",
    "Dotfile",
    "HostConfig",
    "MergedConfig",
    "Package",
    "load_config",
    "loads_config",
    "ConflictChoice",
    "ConflictPolicy",
    "DotlinkManager",
    "DotlinkError",
    "PathProvider",
    "State",
    "StateStore",
    "ApplyAction",
    "ApplyReport",
    "ApplyResult",
    "Change",
    "ChangeKind",
    "StatusEntry",
    "StatusReport",
    "StatusState",
    "UndoReport",
    "app",
    "run",
]
