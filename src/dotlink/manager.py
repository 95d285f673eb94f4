"""High level orchestration for dotlink operations."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Protocol

from .config import Config, Dotfile, Hook, MergedConfig, Package
from .conflict import ConflictPolicy
from .diff import DiffEngine
from .errors import ApplyAbortedError, DotlinkError, InstallError, TemplateError
from .linker import LinkManager
from .models import (
    ApplyAction,
    ApplyReport,
    ApplyResult,
    Change,
    PackageRecord,
    ResourceKind,
    StatusReport,
    UndoReport,
)
from .packages import HomebrewManager, PackageManager
from .paths import PathProvider
from .state import State, StateStore
from .status import check_status
from .template import HostContext, JinjaRenderer, TemplateRenderer
from .undo import UndoEngine

logger = logging.getLogger(__name__)

ContinuePolicy = Callable[[ApplyResult], bool]


class HookRunner(Protocol):
    def run(self, hook: Hook, host: HostContext) -> None: ...


class DotlinkManager:
    """Coordinates diff, apply, status and undo for one merged configuration."""

    def __init__(
        self,
        config: Config,
        *,
        host: str | None = None,
        paths: PathProvider | None = None,
        state_path: Path | None = None,
        package_manager: PackageManager | None = None,
        renderer: TemplateRenderer | None = None,
        hook_runner: HookRunner | None = None,
    ) -> None:
        self.config = config
        self.paths = paths or PathProvider.from_environment()
        self.merged: MergedConfig = config.resolve(host)
        self.resolved: MergedConfig = self.merged.filtered()
        self.store = StateStore(state_path or self.paths.default_state_path)
        self.package_manager = package_manager or HomebrewManager()
        self.renderer = renderer or JinjaRenderer()
        self.hook_runner = hook_runner

    @property
    def host_context(self) -> HostContext:
        return HostContext(name=self.merged.host_name or "default", roles=self.merged.roles)

    def diff(self) -> list[Change]:
        engine = DiffEngine(self.paths, self.package_manager, self.renderer)
        return engine.diff(self.resolved)

    def apply(self, policy: ConflictPolicy, *, continue_on_error: ContinuePolicy | None = None) -> ApplyReport:
        """Apply dotfiles, then packages, then hooks, in declared order.

        Failures are reported per resource; ``continue_on_error`` is consulted after
        each one and returning ``False`` stops the run. The state is written once, at
        the end, whether or not the run was stopped.
        """

        state = self.store.load()
        linker = LinkManager(self.paths, policy, self.renderer)
        results: list[ApplyResult] = []

        def record(result: ApplyResult) -> None:
            results.append(result)
            if result.action is not ApplyAction.FAILED:
                return
            logger.error("%s %s failed: %s", result.resource_kind.value, result.name, result.error)
            if continue_on_error is None or continue_on_error(result):
                return
            self.store.save(state)
            raise ApplyAbortedError(ApplyReport(tuple(results)), result.error) from result.error

        for dotfile in self.resolved.dotfiles:
            record(self._apply_dotfile(linker, dotfile, state))

        if self.resolved.packages:
            try:
                installed = self.package_manager.list_installed()
            except InstallError as exc:
                record(ApplyResult(ResourceKind.PACKAGE, self.package_manager.name, ApplyAction.FAILED, str(exc), exc))
            else:
                for package in self.resolved.packages:
                    record(self._apply_package(package, installed, state))

        for hook in self.resolved.hooks:
            record(self._run_hook(hook))

        self.store.save(state)
        return ApplyReport(tuple(results))

    def status(self) -> StatusReport:
        """Compare every recorded resource with the live system."""

        return check_status(self.store.load(), self.package_manager)

    def undo(self) -> UndoReport:
        return UndoEngine(self.store).undo()

    def render(self, template: Path) -> str:
        path = self.paths.expand(template, base_dir=Path.cwd())
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise TemplateError(f"Failed to read template: {path}") from exc
        return self.renderer.render(text, self.merged.variables, self.host_context)

    # ------------------------------------------------------------------
    # Internal helpers

    def _apply_dotfile(self, linker: LinkManager, dotfile: Dotfile, state: State) -> ApplyResult:
        try:
            outcome = linker.apply_dotfile(dotfile, self.resolved, state)
        except (DotlinkError, OSError) as exc:
            return ApplyResult(ResourceKind.DOTFILE, dotfile.target, ApplyAction.FAILED, str(exc), exc)

        details = None
        if outcome.record is not None and outcome.record.backup_path is not None:
            details = f"backup: {outcome.record.backup_path}"
        return ApplyResult(ResourceKind.DOTFILE, str(outcome.target), outcome.action, details)

    def _apply_package(self, package: Package, installed: set[str], state: State) -> ApplyResult:
        manager = self.package_manager.name
        if package.name in installed:
            action = ApplyAction.UNCHANGED
        else:
            try:
                self.package_manager.install(package.name, package.kind)
            except InstallError as exc:
                return ApplyResult(ResourceKind.PACKAGE, package.name, ApplyAction.FAILED, str(exc), exc)
            action = ApplyAction.INSTALLED

        if not state.has_package(package.name, manager):
            state.add_package(PackageRecord(name=package.name, manager=manager))
        return ApplyResult(ResourceKind.PACKAGE, package.name, action, package.kind.value)

    def _run_hook(self, hook: Hook) -> ApplyResult:
        name = hook.display_name
        if self.hook_runner is None:
            return ApplyResult(ResourceKind.HOOK, name, ApplyAction.SKIPPED, "no hook runner configured")

        try:
            self.hook_runner.run(hook, self.host_context)
        except Exception as exc:  # noqa: BLE001
            if hook.fails_run:
                return ApplyResult(ResourceKind.HOOK, name, ApplyAction.FAILED, str(exc), exc)
            logger.warning("Hook %s failed (continuing): %s", name, exc)
            return ApplyResult(ResourceKind.HOOK, name, ApplyAction.SKIPPED, f"failed: {exc}")
        return ApplyResult(ResourceKind.HOOK, name, ApplyAction.RAN)

