"""node-builder CLI.

Commands:
- compile BUILD_DIR CACHE_DIR ENV_DIR (the buildpack entry point)
- detect PATH (print detected project state and the strategy that would run)
- diagnose LOGFILE (classify a saved build log)
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from node_builder.core import compile_app
from node_builder.detect.base import check_preconditions, detect_context, project_warnings
from node_builder.detect.node_pkg import load_manifest
from node_builder.diagnose.classifier import classify
from node_builder.errors import PreconditionError
from node_builder.installer.process import LogBuffer
from node_builder.installer.selector import select_strategy
from node_builder.output import BuildOutput

app = typer.Typer(add_completion=False, help="Install Node.js dependencies for a build")
console = Console()


@app.command("compile")
def compile_(
    build_dir: Path = typer.Argument(
        ..., exists=True, file_okay=False, writable=True, resolve_path=True, help="App source"
    ),
    cache_dir: Path = typer.Argument(..., resolve_path=True, help="Persistent cache directory"),
    env_dir: Path = typer.Argument(
        ..., exists=True, file_okay=False, resolve_path=True, help="Config var directory"
    ),
    stack: str | None = typer.Option(None, "--stack", envvar="STACK", help="Platform stack"),
) -> None:
    cache_dir.mkdir(parents=True, exist_ok=True)
    result = compile_app(build_dir, cache_dir, env_dir, output=BuildOutput(console), stack=stack)
    if not result.ok:
        raise typer.Exit(code=result.exit_code)


@app.command()
def detect(path: str = typer.Argument(".", help="Path to the app source")) -> None:
    root = Path(path).resolve()
    try:
        check_preconditions(root)
        ctx = detect_context(root, root / ".cache", root / ".env")
        manifest = load_manifest(ctx.package_json)
    except PreconditionError as exc:
        rprint(f"[red]{exc.message}[/red]")
        raise typer.Exit(code=1) from exc

    report = {
        "has_prebuilt_modules": ctx.has_prebuilt_modules,
        "uses_yarn_lock": ctx.uses_yarn_lock,
        "uses_npm_lock": ctx.uses_npm_lock,
        "strategy": select_strategy(ctx, manifest).value,
        "manifest": manifest.model_dump(),
        "warnings": project_warnings(ctx, manifest),
    }
    print(json.dumps(report, indent=2))


@app.command()
def diagnose(
    logfile: Path = typer.Argument(..., exists=True, dir_okay=False, help="Saved build log"),
    as_json: bool = typer.Option(False, "--json", help="Print diagnostics as JSON"),
) -> None:
    buf = LogBuffer()
    for line in logfile.read_text(encoding="utf-8", errors="replace").splitlines():
        buf.append(line)
    found = classify(buf)

    if as_json:
        print(json.dumps([d.model_dump() for d in found], indent=2))
        return
    if not found:
        rprint("[green]No known failure patterns found.[/green]")
        return
    table = Table(title="Diagnostics")
    table.add_column("Key", style="cyan")
    table.add_column("Severity")
    table.add_column("Title")
    for d in found:
        table.add_row(d.key, d.severity, d.title)
    console.print(table)


if __name__ == "__main__":
    app()
