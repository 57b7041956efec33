"""Compile orchestration: detect → toolchain → cache restore → install → cache save.

Fatal preconditions are checked before the build directory is touched. Any
toolchain or pipeline failure stops the build, gets classified, and is reported
with its diagnostics.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from node_builder.cache import manager as cache
from node_builder.cache.manager import CacheStatus, SaveReport
from node_builder.cache.signature import compute_signature, probe_toolchain
from node_builder.config import BuildSettings, load_env_dir, load_settings
from node_builder.context import BuildContext
from node_builder.detect.base import check_preconditions, detect_context, project_warnings
from node_builder.detect.node_pkg import load_manifest
from node_builder.diagnose.classifier import diagnose
from node_builder.errors import BuildError, PipelineFailure, PreconditionError, ToolchainError
from node_builder.installer.env_node import prepare_node_env
from node_builder.installer.pipeline import InstallPipeline, PipelineRun
from node_builder.installer.process import LogBuffer, ProcessRunner, SubprocessRunner, build_env
from node_builder.installer.runtime import NodebinInstaller, RuntimeInstaller
from node_builder.installer.selector import (
    Strategy,
    discard_prebuilt_modules,
    listing_command,
    select_strategy,
)
from node_builder.logging import get_logger
from node_builder.output import BuildOutput
from node_builder.types import DependencyManifest, Diagnostic

log = get_logger(__name__)

_STATUS_NOTES = {
    CacheStatus.VALID: "Restoring cached directories",
    CacheStatus.INVALID: (
        "Cached directories were not restored due to a change in version of node, npm, yarn "
        "or stack"
    ),
    CacheStatus.ABSENT: "Cache directories not found; this is normal for a first build",
}


@dataclass
class CompileResult:
    strategy: Strategy | None = None
    cache_status: CacheStatus | None = None
    signature: str | None = None
    pipeline: PipelineRun | None = None
    saved: SaveReport | None = None
    diagnostics: list[Diagnostic] = field(default_factory=list)
    error: BuildError | None = None
    log: LogBuffer = field(default_factory=LogBuffer)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


def compile_app(
    build_dir: Path,
    cache_dir: Path,
    env_dir: Path,
    *,
    runner: ProcessRunner | None = None,
    installer: RuntimeInstaller | None = None,
    output: BuildOutput | None = None,
    stack: str | None = None,
) -> CompileResult:
    out = output or BuildOutput()
    result = CompileResult()

    out.header("Creating runtime environment")
    try:
        check_preconditions(build_dir)
        ctx = detect_context(build_dir, cache_dir, env_dir)
        manifest = load_manifest(ctx.package_json)
        settings = load_settings(env_dir, stack=stack)
        env = build_env(ctx.build_dir, load_env_dir(env_dir), settings.node_env)
    except PreconditionError as exc:
        log.error("precondition failed", extra={"fields": {"error": exc.message}})
        out.error(exc.message)
        result.error = exc
        return result

    runner = runner or SubprocessRunner(echo=out.line)
    if installer is not None:
        return _build(ctx, manifest, settings, env, runner, installer, out, result)
    with NodebinInstaller(base_url=settings.nodebin_url) as owned:
        return _build(ctx, manifest, settings, env, runner, owned, out, result)


def _build(
    ctx: BuildContext,
    manifest: DependencyManifest,
    settings: BuildSettings,
    env: dict[str, str],
    runner: ProcessRunner,
    installer: RuntimeInstaller,
    out: BuildOutput,
    result: CompileResult,
) -> CompileResult:
    for note in project_warnings(ctx, manifest):
        out.warning(note)

    strategy = select_strategy(ctx, manifest)
    result.strategy = strategy
    log.info("strategy selected", extra={"fields": {"strategy": strategy.value}})
    if strategy is Strategy.YARN:
        ctx = discard_prebuilt_modules(ctx, out)

    names = cache.resolve_cache_directories(manifest)

    try:
        out.header("Installing binaries")
        prepare_node_env(ctx, manifest, strategy, installer, runner, env, result.log, out)
        toolchain = probe_toolchain(runner, ctx, env, strategy.package_manager, settings.stack)
        result.signature = compute_signature(toolchain)

        out.header("Restoring cache")
        result.cache_status = cache.cache_status(ctx, result.signature)
        out.info(f"Cache status: {result.cache_status.value}")
        if not settings.node_modules_cache:
            out.info("Caching has been disabled because NODE_MODULES_CACHE=false")
        else:
            out.info(_STATUS_NOTES[result.cache_status])
            if result.cache_status is CacheStatus.VALID:
                restored = cache.restore(ctx, names)
                for name in restored.restored:
                    out.info(f"- {name}")
                for name in restored.skipped:
                    out.info(f"- {name} (exists - skipping)")
                for name in restored.missing:
                    out.info(f"- {name} (not cached - skipping)")
                for name in restored.failed:
                    out.warning(
                        f"Unable to restore {name} from cache; it will be installed from scratch"
                    )

        out.header("Building dependencies")
        pipeline = InstallPipeline(runner, result.log, out, env)
        result.pipeline = pipeline.execute(ctx, manifest, strategy)
    except (ToolchainError, PipelineFailure) as exc:
        out.error(f"Build failed: {exc.message}")
        result.error = exc
        result.diagnostics = diagnose(exc, result.log)
        out.diagnostics(result.diagnostics)
        return result

    if settings.node_verbose:
        out.header("Listing dependencies")
        # npm ls exits non-zero on extraneous packages; the listing is informational
        runner.run(listing_command(strategy), cwd=ctx.build_dir, env=env)

    out.header("Caching build")
    if settings.node_modules_cache:
        result.saved = cache.save(ctx, names, result.signature)
        for name in result.saved.saved:
            out.info(f"- {name}")
        for name in result.saved.missing:
            out.info(f"- {name} (nothing to cache)")
        for name in result.saved.failed:
            out.warning(f"Unable to cache {name}; the next build will install it from scratch")
    else:
        out.info("Skipping cache save (disabled by NODE_MODULES_CACHE=false)")

    out.header("Build succeeded!")
    return result
