"""Installer selection.

Three mutually exclusive strategies, decided once per build from the
pre-restore project state:

- YARN: a yarn.lock is present (wins over everything else)
- REBUILD: node_modules already exists in the build dir (checked in)
- INSTALL: a fresh npm install from package.json
"""

from __future__ import annotations

import shutil
from enum import Enum

from node_builder.context import BuildContext
from node_builder.logging import get_logger
from node_builder.output import BuildOutput
from node_builder.types import DependencyManifest

log = get_logger(__name__)


class Strategy(str, Enum):
    YARN = "yarn"
    REBUILD = "rebuild"
    INSTALL = "install"

    @property
    def package_manager(self) -> str:
        return "yarn" if self is Strategy.YARN else "npm"


def select_strategy(ctx: BuildContext, manifest: DependencyManifest) -> Strategy:
    _ = manifest  # the manifest does not influence the choice today
    if ctx.uses_yarn_lock:
        return Strategy.YARN
    if ctx.has_prebuilt_modules:
        return Strategy.REBUILD
    return Strategy.INSTALL


def discard_prebuilt_modules(ctx: BuildContext, output: BuildOutput) -> BuildContext:
    """Remove checked-in node_modules; yarn refuses to install over foreign state."""
    if not ctx.has_prebuilt_modules:
        return ctx
    output.warning(
        "node_modules checked into source control alongside yarn.lock; "
        "removing it so yarn can install from the lockfile"
    )
    shutil.rmtree(ctx.node_modules)
    log.info("removed prebuilt node_modules", extra={"fields": {"path": str(ctx.node_modules)}})
    return ctx.refreshed()


def strategy_commands(strategy: Strategy, ctx: BuildContext) -> list[list[str]]:
    userconfig = str(ctx.build_dir / ".npmrc")
    npm_install = ["npm", "install", "--unsafe-perm", "--userconfig", userconfig]
    if strategy is Strategy.YARN:
        return [["yarn", "install", "--pure-lockfile", "--ignore-engines"]]
    if strategy is Strategy.REBUILD:
        return [["npm", "rebuild"], npm_install]
    return [npm_install]


def hook_command(strategy: Strategy, script: str) -> list[str]:
    return [strategy.package_manager, "run", script]


def listing_command(strategy: Strategy) -> list[str]:
    if strategy is Strategy.YARN:
        return ["yarn", "list", "--depth=0"]
    return ["npm", "ls", "--depth=0"]


def describe(strategy: Strategy, ctx: BuildContext) -> str:
    if strategy is Strategy.YARN:
        return "Installing node modules (yarn.lock)"
    if strategy is Strategy.REBUILD:
        return "Rebuilding any native modules, then installing new modules (package.json)"
    if ctx.uses_npm_lock:
        return "Installing node modules (package.json + package-lock)"
    return "Installing node modules (package.json)"
