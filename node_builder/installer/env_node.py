"""Node toolchain preparation.

Installs node into ``.heroku/node`` (and yarn into ``.heroku/yarn`` for yarn
projects) inside the build dir, then pins npm when ``engines.npm`` asks for a
version other than the one bundled with node.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from node_builder.context import BuildContext
from node_builder.errors import ToolchainError
from node_builder.installer.process import LogBuffer, ProcessRunner
from node_builder.installer.runtime import RuntimeInstaller
from node_builder.installer.selector import Strategy
from node_builder.output import BuildOutput
from node_builder.types import DependencyManifest

DEFAULT_NODE_VERSION = "20.x"
DEFAULT_YARN_VERSION = "1.22.x"


def node_dir(ctx: BuildContext) -> Path:
    return ctx.build_dir / ".heroku" / "node"


def yarn_dir(ctx: BuildContext) -> Path:
    return ctx.build_dir / ".heroku" / "yarn"


def _pin_npm(
    ctx: BuildContext,
    constraint: str,
    runner: ProcessRunner,
    env: Mapping[str, str],
    log_buffer: LogBuffer,
    output: BuildOutput,
) -> None:
    current = runner.run(["npm", "--version"], cwd=ctx.build_dir, env=env)
    bundled = current.output[-1].strip() if current.exit_code == 0 and current.output else None
    if bundled == constraint:
        output.info(f"npm {bundled} already installed with node")
        return
    output.info(f"Bootstrapping npm {constraint} (replacing {bundled or 'unknown'})")
    command = ["npm", "install", "--unsafe-perm", "--quiet", "-g", f"npm@{constraint}"]
    result = runner.run(command, cwd=ctx.build_dir, env=env)
    log_buffer.extend(result.output)
    if result.exit_code != 0:
        raise ToolchainError(f"Unable to install npm {constraint}", exit_code=result.exit_code)


def prepare_node_env(
    ctx: BuildContext,
    manifest: DependencyManifest,
    strategy: Strategy,
    installer: RuntimeInstaller,
    runner: ProcessRunner,
    env: Mapping[str, str],
    log_buffer: LogBuffer,
    output: BuildOutput,
) -> None:
    node_range = manifest.engines.node or DEFAULT_NODE_VERSION
    output.info(f"engines.node (package.json): {manifest.engines.node or 'unspecified'}")
    resolved = installer.install("node", node_range, node_dir(ctx))
    output.info(f"Downloaded and installed node {resolved.version}")

    if strategy is Strategy.YARN:
        yarn_range = manifest.engines.yarn or DEFAULT_YARN_VERSION
        resolved = installer.install("yarn", yarn_range, yarn_dir(ctx))
        output.info(f"Downloaded and installed yarn {resolved.version}")
    elif manifest.engines.npm:
        _pin_npm(ctx, manifest.engines.npm, runner, env, log_buffer, output)
