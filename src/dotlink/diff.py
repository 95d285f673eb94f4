"""Comparison of declared resources against the live filesystem and package set."""

from __future__ import annotations

import logging
from pathlib import Path

from .config import Dotfile, MergedConfig, Package
from .errors import DotlinkError, SourceMissingError
from .filesystem import link_destination
from .models import Change, ResourceKind
from .packages import PackageManager
from .paths import PathProvider
from .template import HostContext, TemplateRenderer

logger = logging.getLogger(__name__)


def resolve_dotfile_paths(dotfile: Dotfile, paths: PathProvider, base_dir: Path) -> tuple[Path, Path]:
    """Return the expanded ``(source, target)`` pair for ``dotfile``."""

    return (
        paths.expand(dotfile.source, base_dir=base_dir),
        paths.expand(dotfile.target, base_dir=base_dir),
    )


def rendered_path_for(dotfile: Dotfile, paths: PathProvider) -> Path:
    """Return the render cache file that a template dotfile is linked from."""

    return paths.render_cache_dir / dotfile.rendered_name


class DiffEngine:
    """Produces one :class:`Change` per declared resource, in declared order."""

    def __init__(
        self,
        paths: PathProvider,
        package_manager: PackageManager | None = None,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.paths = paths
        self.package_manager = package_manager
        self.renderer = renderer

    def diff(self, config: MergedConfig) -> list[Change]:
        """Diff every dotfile, then every package, of an already role-filtered config.

        Raises :class:`~dotlink.errors.SourceMissingError` on the first dotfile whose
        source is missing.
        """

        changes = [self.diff_dotfile(dotfile, config) for dotfile in config.dotfiles]
        if config.packages:
            changes.extend(self.diff_packages(config.packages))
        return changes

    def diff_dotfile(self, dotfile: Dotfile, config: MergedConfig) -> Change:
        source, target = resolve_dotfile_paths(dotfile, self.paths, config.base_dir)
        if not source.exists():
            raise SourceMissingError(source)

        if not target.exists():
            return Change.add(ResourceKind.DOTFILE, f"{target} → {source}")

        if not target.is_symlink():
            return Change.modify(ResourceKind.DOTFILE, str(target), "exists but is not a symlink")

        expected = rendered_path_for(dotfile, self.paths) if dotfile.is_template else source
        if link_destination(target) != expected.resolve(strict=False):
            current = Path(target.readlink())
            return Change.modify(ResourceKind.DOTFILE, str(target), f"points to wrong target: {current}")

        if dotfile.is_template and self._rendered_is_stale(source, expected, config):
            return Change.modify(ResourceKind.DOTFILE, str(target), "rendered template is out of date")
        return Change.already_correct(ResourceKind.DOTFILE, str(target))

    def _rendered_is_stale(self, source: Path, rendered: Path, config: MergedConfig) -> bool:
        if self.renderer is None:
            return False
        try:
            text = source.read_text(encoding="utf-8")
            current = rendered.read_text(encoding="utf-8")
        except OSError as exc:
            logger.debug("Treating %s as stale: %s", rendered, exc)
            return True
        host = HostContext(name=config.host_name or "default", roles=config.roles)
        return self.renderer.render(text, config.variables, host) != current

    def diff_packages(self, packages: tuple[Package, ...]) -> list[Change]:
        if self.package_manager is None:
            raise DotlinkError("A package manager is required to diff packages")

        installed = self.package_manager.list_installed()
        logger.debug("%d packages installed according to %s", len(installed), self.package_manager.name)
        changes = []
        for package in packages:
            if package.name in installed:
                changes.append(
                    Change.already_correct(ResourceKind.PACKAGE, f"{self.package_manager.name} package: {package.name}")
                )
            else:
                changes.append(Change.add(ResourceKind.PACKAGE, package.name))
        return changes
