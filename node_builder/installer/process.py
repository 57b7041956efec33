"""Subprocess execution and the build log buffer.

`SubprocessRunner` streams merged stdout/stderr line by line so the operator
sees install progress live, and returns the captured lines to the caller.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from node_builder.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    exit_code: int
    output: list[str] = field(default_factory=list)


class ProcessRunner(Protocol):
    def run(
        self, command: list[str], cwd: Path, env: Mapping[str, str] | None = None
    ) -> ProcessResult: ...


class LogBuffer:
    """Append-only, ordered record of subprocess output for one build."""

    def __init__(self) -> None:
        self._lines: list[str] = []

    def append(self, line: str) -> None:
        self._lines.append(line.rstrip("\n"))

    def extend(self, lines: list[str]) -> None:
        for line in lines:
            self.append(line)

    @property
    def lines(self) -> tuple[str, ...]:
        return tuple(self._lines)

    def text(self) -> str:
        return "\n".join(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[str]:
        return iter(self._lines)


class SubprocessRunner:
    def __init__(self, echo: Callable[[str], None] | None = None) -> None:
        self.echo = echo

    def run(
        self, command: list[str], cwd: Path, env: Mapping[str, str] | None = None
    ) -> ProcessResult:
        log.info("exec", extra={"fields": {"command": command, "cwd": str(cwd)}})
        try:
            proc = subprocess.Popen(
                command,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
            )
        except FileNotFoundError:
            # Same convention as a shell: command not found is 127
            line = f"{command[0]}: command not found"
            if self.echo:
                self.echo(line)
            return ProcessResult(exit_code=127, output=[line])

        captured: list[str] = []
        assert proc.stdout is not None
        with proc.stdout:
            for line in proc.stdout:
                line = line.rstrip("\n")
                captured.append(line)
                if self.echo:
                    self.echo(line)
        code = proc.wait()
        log.info("exit", extra={"fields": {"command": command, "exit_code": code}})
        return ProcessResult(exit_code=code, output=captured)


def build_env(
    build_dir: Path,
    config_vars: Mapping[str, str],
    node_env: str,
    base: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Environment for toolchain subprocesses: vendored binaries first on PATH."""
    env = dict(os.environ if base is None else base)
    env.update(config_vars)
    paths = [
        build_dir / ".heroku" / "node" / "bin",
        build_dir / ".heroku" / "yarn" / "bin",
        build_dir / "node_modules" / ".bin",
    ]
    env["PATH"] = os.pathsep.join([*(str(p) for p in paths), env.get("PATH", "")])
    env.setdefault("NODE_ENV", node_env)
    return env
