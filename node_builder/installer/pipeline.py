"""Installation pipeline: PreHook -> Install -> PostHook, fail-fast.

Every line of subprocess output lands in the LogBuffer in order. The first
non-zero exit moves the run to FAILED and raises PipelineFailure; no later
step executes. Classifying the failure is the caller's job.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from node_builder.context import BuildContext
from node_builder.errors import PipelineFailure
from node_builder.installer.process import LogBuffer, ProcessRunner
from node_builder.installer.selector import Strategy, describe, hook_command, strategy_commands
from node_builder.logging import get_logger
from node_builder.output import BuildOutput
from node_builder.types import DependencyManifest

log = get_logger(__name__)


class PipelineState(str, Enum):
    START = "start"
    PRE_HOOK = "pre-hook"
    INSTALL = "install"
    POST_HOOK = "post-hook"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineRun:
    strategy: Strategy
    states: list[PipelineState] = field(default_factory=lambda: [PipelineState.START])
    commands: list[list[str]] = field(default_factory=list)

    @property
    def state(self) -> PipelineState:
        return self.states[-1]

    def enter(self, state: PipelineState) -> None:
        if self.state in (PipelineState.DONE, PipelineState.FAILED):
            raise RuntimeError(f"pipeline already finished in {self.state.value}")
        self.states.append(state)


class InstallPipeline:
    def __init__(
        self,
        runner: ProcessRunner,
        log_buffer: LogBuffer,
        output: BuildOutput,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.runner = runner
        self.log_buffer = log_buffer
        self.output = output
        self.env = env

    def _exec(self, run: PipelineRun, ctx: BuildContext, command: list[str]) -> None:
        run.commands.append(command)
        result = self.runner.run(command, cwd=ctx.build_dir, env=self.env)
        self.log_buffer.extend(result.output)
        if result.exit_code != 0:
            failed_in = run.state
            run.enter(PipelineState.FAILED)
            log.error(
                "pipeline step failed",
                extra={
                    "fields": {
                        "state": failed_in.value,
                        "command": command,
                        "exit_code": result.exit_code,
                    }
                },
            )
            raise PipelineFailure(failed_in.value, command, result.exit_code)

    def _hook(self, run: PipelineRun, ctx: BuildContext, script: str | None) -> None:
        if script is None:
            return
        self.output.info(f"Running {script}")
        self._exec(run, ctx, hook_command(run.strategy, script))

    def execute(
        self, ctx: BuildContext, manifest: DependencyManifest, strategy: Strategy
    ) -> PipelineRun:
        run = PipelineRun(strategy=strategy)

        run.enter(PipelineState.PRE_HOOK)
        self._hook(run, ctx, manifest.prebuild)

        run.enter(PipelineState.INSTALL)
        self.output.info(describe(strategy, ctx))
        for command in strategy_commands(strategy, ctx):
            self._exec(run, ctx, command)

        run.enter(PipelineState.POST_HOOK)
        self._hook(run, ctx, manifest.postbuild)

        run.enter(PipelineState.DONE)
        return run
