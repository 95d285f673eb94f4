"""Drift detection for resources recorded in the state file."""

from __future__ import annotations

from .errors import InstallError
from .filesystem import link_destination, occupied
from .models import DotfileRecord, PackageRecord, ResourceKind, StatusEntry, StatusReport, StatusState
from .packages import PackageManager
from .state import State


def dotfile_status(record: DotfileRecord) -> StatusEntry:
    target = record.target
    expected = record.rendered_path or record.source
    name = str(target)

    if not occupied(target):
        return StatusEntry(ResourceKind.DOTFILE, name, StatusState.MISSING, "Target is missing")
    if not target.is_symlink():
        return StatusEntry(ResourceKind.DOTFILE, name, StatusState.NOT_SYMLINK, "Target is not a symlink")

    actual = link_destination(target)
    if not actual.exists():
        return StatusEntry(ResourceKind.DOTFILE, name, StatusState.BROKEN_LINK, f"Link to {actual} is broken")
    if not expected.exists():
        return StatusEntry(ResourceKind.DOTFILE, name, StatusState.SOURCE_MISSING, f"Source missing: {expected}")
    if actual != expected.resolve(strict=False):
        return StatusEntry(
            ResourceKind.DOTFILE,
            name,
            StatusState.WRONG_TARGET,
            f"Points to {actual} instead of {expected}",
        )
    return StatusEntry(ResourceKind.DOTFILE, name, StatusState.IN_SYNC)


def package_statuses(records: list[PackageRecord], package_manager: PackageManager) -> list[StatusEntry]:
    if not records:
        return []

    installed: set[str] | None = None
    failure: str | None = None
    try:
        installed = package_manager.list_installed()
    except InstallError as exc:
        failure = str(exc)

    entries = []
    for record in records:
        if record.manager != package_manager.name:
            entries.append(
                StatusEntry(ResourceKind.PACKAGE, record.name, StatusState.UNKNOWN, f"Unknown manager '{record.manager}'")
            )
        elif installed is None:
            entries.append(StatusEntry(ResourceKind.PACKAGE, record.name, StatusState.UNKNOWN, failure))
        elif record.name in installed:
            entries.append(StatusEntry(ResourceKind.PACKAGE, record.name, StatusState.IN_SYNC))
        else:
            entries.append(
                StatusEntry(ResourceKind.PACKAGE, record.name, StatusState.NOT_INSTALLED, "Package not installed")
            )
    return entries


def check_status(state: State, package_manager: PackageManager) -> StatusReport:
    """Compare every recorded resource with the live system."""

    entries = [dotfile_status(record) for record in state.dotfiles]
    entries.extend(package_statuses(state.packages, package_manager))
    return StatusReport(entries=tuple(entries))
