"""Cache manager: restore and save named directories between builds.

Layout under CACHE_DIR:

    node/signature          toolchain signature the cache was saved with
    node/<name>/...         one copy per cached directory (names may be nested)

Restore only happens when the stored signature matches the current one. Save
always starts from an empty store so no stale directories survive.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from node_builder.cache.signature import CACHE_NAMESPACE, read_signature, write_signature
from node_builder.context import BuildContext
from node_builder.logging import get_logger
from node_builder.security.archive import is_within
from node_builder.types import DependencyManifest

log = get_logger(__name__)

DEFAULT_CACHE_DIRECTORIES = ("node_modules", "bower_components")


class CacheStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    ABSENT = "absent"


@dataclass
class RestoreReport:
    restored: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


@dataclass
class SaveReport:
    saved: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def store_root(ctx: BuildContext) -> Path:
    return ctx.cache_dir / CACHE_NAMESPACE


def cache_status(ctx: BuildContext, signature: str) -> CacheStatus:
    stored = read_signature(ctx)
    if stored is None:
        return CacheStatus.ABSENT
    if stored != signature:
        return CacheStatus.INVALID
    return CacheStatus.VALID


def resolve_cache_directories(manifest: DependencyManifest) -> list[str]:
    """Declared directories when the manifest has the field, else the default pair."""
    if manifest.cache_directories is not None:
        return list(manifest.cache_directories)
    return list(DEFAULT_CACHE_DIRECTORIES)


def _checked(base: Path, name: str) -> Path:
    rel = Path(name)
    if rel.is_absolute() or ".." in rel.parts:
        raise ValueError(f"Cache directory must be a relative path inside the app: {name}")
    target = (base / rel).resolve()
    if not is_within(base.resolve(), target):
        raise ValueError(f"Cache directory escapes the app: {name}")
    if target == base.resolve():
        raise ValueError(f"Cache directory must name a directory below the app root: {name!r}")
    return base / rel


def _overlaps(a: str, b: str) -> bool:
    """True when one relative name is the other or nested inside it."""
    pa, pb = Path(a).parts, Path(b).parts
    n = min(len(pa), len(pb))
    return pa[:n] == pb[:n]


def restore(ctx: BuildContext, names: list[str]) -> RestoreReport:
    report = RestoreReport()
    root = store_root(ctx)
    for name in names:
        try:
            src = _checked(root, name)
            dst = _checked(ctx.build_dir, name)
        except ValueError as exc:
            log.warning("cache restore rejected", extra={"fields": {"dir": name, "error": str(exc)}})
            report.skipped.append(name)
            continue
        if not src.is_dir():
            report.missing.append(name)
            continue
        if dst.exists():
            # never clobber directories that came with the source tree
            report.skipped.append(name)
            continue
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(src, dst, symlinks=True)
        except OSError as exc:
            log.warning(
                "cache restore failed", extra={"fields": {"dir": name, "error": str(exc)}}
            )
            # dst did not exist before this copy, so anything there is partial
            shutil.rmtree(dst, ignore_errors=True)
            report.failed.append(name)
            continue
        report.restored.append(name)
    log.info(
        "cache restored",
        extra={
            "fields": {
                "restored": report.restored,
                "skipped": report.skipped,
                "failed": report.failed,
            }
        },
    )
    return report


def clear(ctx: BuildContext) -> None:
    root = store_root(ctx)
    if root.exists():
        shutil.rmtree(root)


def save(ctx: BuildContext, names: list[str], signature: str) -> SaveReport:
    """Replace the stored cache with *names* from the build dir, then stamp *signature*.

    A directory that fails to copy, or overlaps one already saved, is logged and
    listed in ``failed``; the rest are still saved and nothing saved is removed.
    """
    report = SaveReport()
    clear(ctx)
    root = store_root(ctx)
    root.mkdir(parents=True, exist_ok=True)
    for name in names:
        try:
            src = _checked(ctx.build_dir, name)
            dst = _checked(root, name)
        except ValueError as exc:
            log.warning("cache save rejected", extra={"fields": {"dir": name, "error": str(exc)}})
            report.failed.append(name)
            continue
        if not src.is_dir():
            report.missing.append(name)
            continue
        clash = next((s for s in report.saved if _overlaps(s, name)), None)
        if clash is not None or dst.exists():
            log.warning(
                "cache save overlaps",
                extra={"fields": {"dir": name, "overlaps": clash or str(dst)}},
            )
            report.failed.append(name)
            continue
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(src, dst, symlinks=True)
        except OSError as exc:
            log.warning("cache save failed", extra={"fields": {"dir": name, "error": str(exc)}})
            # dst did not exist before this copy, so only the partial copy is removed
            shutil.rmtree(dst, ignore_errors=True)
            report.failed.append(name)
            continue
        report.saved.append(name)
    write_signature(ctx, signature)
    log.info("cache saved", extra={"fields": {"saved": report.saved, "failed": report.failed}})
    return report
