from __future__ import annotations

import io
import json
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import pytest
from rich.console import Console

from node_builder.installer.process import ProcessResult
from node_builder.installer.runtime import ResolvedRuntime
from node_builder.output import BuildOutput

DEFAULT_RESPONSES: dict[str, tuple[int, list[str]]] = {
    "node --version": (0, ["v20.11.1"]),
    "npm --version": (0, ["10.2.4"]),
    "yarn --version": (0, ["1.22.19"]),
}


class FakeRunner:
    """Records every command; answers by longest matching command prefix."""

    def __init__(
        self,
        responses: dict[str, tuple[int, list[str]]] | None = None,
        effects: dict[str, Callable[[Path], None]] | None = None,
    ) -> None:
        self.responses = {**DEFAULT_RESPONSES, **(responses or {})}
        self.effects = effects or {}
        self.calls: list[list[str]] = []

    def run(self, command, cwd, env=None) -> ProcessResult:
        self.calls.append(list(command))
        key = " ".join(command)
        for prefix, effect in self.effects.items():
            if key.startswith(prefix):
                effect(Path(cwd))
        for prefix in sorted(self.responses, key=len, reverse=True):
            if key.startswith(prefix):
                code, out = self.responses[prefix]
                return ProcessResult(exit_code=code, output=list(out))
        return ProcessResult(exit_code=0, output=[])

    def ran(self, prefix: str) -> bool:
        return any(" ".join(c).startswith(prefix) for c in self.calls)


@dataclass
class FakeInstaller:
    calls: list[tuple[str, str, Path]]

    def install(self, tool: str, constraint: str, target_dir: Path) -> ResolvedRuntime:
        self.calls.append((tool, constraint, target_dir))
        (target_dir / "bin").mkdir(parents=True, exist_ok=True)
        return ResolvedRuntime(tool=tool, version=constraint.replace("x", "0"), url="file:///dev/null")


@dataclass
class AppDirs:
    build: Path
    cache: Path
    env: Path

    def write_package_json(self, data: dict | None = None) -> Path:
        path = self.build / "package.json"
        path.write_text(json.dumps(data if data is not None else {"name": "app"}), encoding="utf-8")
        return path

    def set_env(self, name: str, value: str) -> None:
        (self.env / name).write_text(value, encoding="utf-8")


@pytest.fixture
def app_dirs(tmp_path: Path) -> AppDirs:
    dirs = AppDirs(build=tmp_path / "build", cache=tmp_path / "cache", env=tmp_path / "env")
    for p in (dirs.build, dirs.cache, dirs.env):
        p.mkdir()
    return dirs


@pytest.fixture
def fake_runner() -> type[FakeRunner]:
    return FakeRunner


@pytest.fixture
def fake_installer() -> FakeInstaller:
    return FakeInstaller(calls=[])


@pytest.fixture
def quiet_output() -> BuildOutput:
    return BuildOutput(Console(file=io.StringIO(), width=200, color_system=None))
