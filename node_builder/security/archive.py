"""Safe tarball extraction for runtime downloads.

Guards against common archive attacks:
- Tar Slip (../ traversal)
- Absolute paths
- Symlink escapes (link targets must stay inside the destination)
- Device nodes and FIFOs (rejected)
- Oversized files (basic cap)
"""

from __future__ import annotations

import os
import shutil
import stat
import tarfile
from pathlib import Path, PurePosixPath

MAX_MEMBER_BYTES = 256 * 1024 * 1024  # 256 MiB per member


def is_within(base: Path, target: Path) -> bool:
    try:
        target.relative_to(base)
        return True
    except ValueError:
        return False


def _stripped(name: str, strip_components: int) -> PurePosixPath | None:
    parts = PurePosixPath(name).parts
    if len(parts) <= strip_components:
        return None
    return PurePosixPath(*parts[strip_components:])


def safe_extract_tar(tar_path: Path, dest: Path, strip_components: int = 1) -> None:
    dest.mkdir(parents=True, exist_ok=True)
    base = dest.resolve()
    with tarfile.open(tar_path, "r:*") as tar:
        for m in tar.getmembers():
            raw = PurePosixPath(m.name)
            # Disallow absolute paths and traversal
            if raw.is_absolute() or ".." in raw.parts:
                raise RuntimeError(f"Unsafe member path: {m.name}")
            rel = _stripped(m.name, strip_components)
            if rel is None or str(rel) in {"", "."}:
                continue
            target = base / rel
            if not is_within(base, target.parent.resolve()):
                raise RuntimeError(f"Member escapes destination: {m.name}")

            if m.isdir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            if m.issym():
                link = (target.parent / m.linkname).resolve()
                if os.path.isabs(m.linkname) or not is_within(base, link):
                    raise RuntimeError(f"Symlink escapes destination: {m.name} -> {m.linkname}")
                if target.is_symlink() or target.exists():
                    target.unlink()
                target.symlink_to(m.linkname)
                continue
            if m.islnk():
                source = _stripped(m.linkname, strip_components)
                if source is None or ".." in source.parts:
                    raise RuntimeError(f"Unsafe hard link: {m.name} -> {m.linkname}")
                shutil.copy2(base / source, target)
                continue
            if not m.isfile():
                raise RuntimeError(f"Unsupported member type: {m.name}")
            if m.size > MAX_MEMBER_BYTES:
                raise RuntimeError(f"Member too large: {m.name} ({m.size} bytes)")
            src = tar.extractfile(m)
            if src is None:
                raise RuntimeError(f"Unreadable member: {m.name}")
            with src, open(target, "wb") as out:
                shutil.copyfileobj(src, out)
            # strip setuid/setgid, keep the executable bits node/npm need
            os.chmod(target, stat.S_IMODE(m.mode) & ~stat.S_ISUID & ~stat.S_ISGID)
