"""Shared Pydantic models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

PREBUILD_SCRIPT = "heroku-prebuild"
POSTBUILD_SCRIPT = "heroku-postbuild"


class EnginesModel(BaseModel):
    node: str | None = None
    npm: str | None = None
    yarn: str | None = None


class DependencyManifest(BaseModel):
    """Read-only view of the fields of package.json the builder consumes.

    Attributes
    ----------
    engines: EnginesModel
        Declared version constraints for node and the package managers.
    cache_directories: list[str] | None
        Explicit cache directory names; ``None`` when the project declares none.
    scripts: dict[str, str]
        Declared npm scripts, used to find lifecycle hooks.
    """

    name: str | None = None
    version: str | None = None
    engines: EnginesModel = Field(default_factory=EnginesModel)
    cache_directories: list[str] | None = None
    scripts: dict[str, str] = Field(default_factory=dict)

    @property
    def prebuild(self) -> str | None:
        return PREBUILD_SCRIPT if PREBUILD_SCRIPT in self.scripts else None

    @property
    def postbuild(self) -> str | None:
        return POSTBUILD_SCRIPT if POSTBUILD_SCRIPT in self.scripts else None


class Toolchain(BaseModel):
    node_version: str
    package_manager: Literal["npm", "yarn"]
    package_manager_version: str
    stack: str


class Diagnostic(BaseModel):
    key: str
    title: str
    message: str
    severity: Literal["fatal", "warning"]
