"""Project detection and fatal precondition checks.

Everything here is read-only: it inspects the build directory and either
returns a BuildContext or raises PreconditionError before any work begins.
"""

from __future__ import annotations

import json
from pathlib import Path

from node_builder.context import NODE_MODULES, NPM_LOCKS, YARN_LOCK, BuildContext
from node_builder.errors import PreconditionError
from node_builder.types import DependencyManifest

# Directories the builder itself owns inside the build dir.
FORBIDDEN_DIRS = (".heroku/node", ".heroku/yarn")

# npm 7+ writes lockfileVersion 2 or 3.
CURRENT_LOCKFILE_VERSION = 2


def detect_context(build_dir: Path, cache_dir: Path, env_dir: Path) -> BuildContext:
    # BuildContext itself rejects both lock flags being set
    return BuildContext(
        build_dir=build_dir,
        cache_dir=cache_dir,
        env_dir=env_dir,
        has_prebuilt_modules=(build_dir / NODE_MODULES).exists(),
        uses_yarn_lock=(build_dir / YARN_LOCK).exists(),
        uses_npm_lock=any((build_dir / name).exists() for name in NPM_LOCKS),
    )


def check_preconditions(build_dir: Path) -> None:
    for rel in FORBIDDEN_DIRS:
        if (build_dir / rel).exists():
            raise PreconditionError(
                f"{rel} directory checked in; remove it from source control and redeploy"
            )


def _lockfile_version(path: Path) -> int | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError):
        return None
    version = data.get("lockfileVersion") if isinstance(data, dict) else None
    return version if isinstance(version, int) else None


def project_warnings(ctx: BuildContext, manifest: DependencyManifest) -> list[str]:
    """Non-fatal observations reported before the install starts."""
    notes: list[str] = []
    # with yarn.lock the modules are discarded, which gets its own warning
    if ctx.has_prebuilt_modules and not ctx.uses_yarn_lock:
        notes.append(
            "node_modules checked into source control; "
            "add node_modules to .gitignore for faster, reproducible builds"
        )
    if not manifest.engines.node:
        notes.append("Node version not specified in package.json engines; using the default")
    if ctx.uses_npm_lock:
        for name in NPM_LOCKS:
            path = ctx.build_dir / name
            if not path.exists():
                continue
            version = _lockfile_version(path)
            if version is not None and version < CURRENT_LOCKFILE_VERSION:
                notes.append(
                    f"{name} uses lockfileVersion {version}; "
                    "regenerate it with a current npm to avoid slow installs"
                )
    if ctx.uses_yarn_lock and manifest.engines.npm:
        notes.append("engines.npm is ignored because this project installs with yarn")
    return notes
