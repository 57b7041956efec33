"""Cache signature: a fingerprint of the toolchain a cache was built with.

The signature is only ever compared for equality; nothing parses it back.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from node_builder.context import BuildContext
from node_builder.errors import ToolchainError
from node_builder.installer.process import ProcessRunner
from node_builder.types import Toolchain

CACHE_NAMESPACE = "node"
SIGNATURE_FILE = "signature"


def compute_signature(toolchain: Toolchain) -> str:
    return (
        f"{toolchain.package_manager_version}; "
        f"{toolchain.node_version}; "
        f"{toolchain.stack}"
    )


def signature_path(ctx: BuildContext) -> Path:
    return ctx.cache_dir / CACHE_NAMESPACE / SIGNATURE_FILE


def read_signature(ctx: BuildContext) -> str | None:
    path = signature_path(ctx)
    if not path.is_file():
        return None
    return path.read_text(encoding="utf-8")


def write_signature(ctx: BuildContext, signature: str) -> None:
    path = signature_path(ctx)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(signature, encoding="utf-8")


def _version_of(runner: ProcessRunner, ctx: BuildContext, env: Mapping[str, str], tool: str) -> str:
    result = runner.run([tool, "--version"], cwd=ctx.build_dir, env=env)
    if result.exit_code != 0 or not result.output:
        raise ToolchainError(f"Unable to determine {tool} version", exit_code=result.exit_code)
    return result.output[-1].strip()


def probe_toolchain(
    runner: ProcessRunner,
    ctx: BuildContext,
    env: Mapping[str, str],
    package_manager: str,
    stack: str,
) -> Toolchain:
    """Ask the installed binaries for their versions."""
    return Toolchain(
        node_version=_version_of(runner, ctx, env, "node"),
        package_manager=package_manager,
        package_manager_version=_version_of(runner, ctx, env, package_manager),
        stack=stack,
    )
