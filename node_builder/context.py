"""BuildContext: the explicit value every compile step receives."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path

from node_builder.errors import PreconditionError

YARN_LOCK = "yarn.lock"
NPM_LOCKS = ("package-lock.json", "npm-shrinkwrap.json")
NODE_MODULES = "node_modules"
PACKAGE_JSON = "package.json"


@dataclass(frozen=True)
class BuildContext:
    build_dir: Path
    cache_dir: Path
    env_dir: Path
    has_prebuilt_modules: bool = False
    uses_yarn_lock: bool = False
    uses_npm_lock: bool = False

    def __post_init__(self) -> None:
        if self.uses_yarn_lock and self.uses_npm_lock:
            raise PreconditionError(
                "Two different lockfiles found: package-lock.json and yarn.lock"
            )

    @property
    def package_json(self) -> Path:
        return self.build_dir / PACKAGE_JSON

    @property
    def node_modules(self) -> Path:
        return self.build_dir / NODE_MODULES

    def refreshed(self) -> BuildContext:
        """Return a copy whose flags reflect the build directory as it is now."""
        return replace(self, has_prebuilt_modules=self.node_modules.exists())
