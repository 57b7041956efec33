"""Runtime binaries: resolve a semver range, download, extract.

Version resolution is delegated to a nodebin-style index that answers
``GET <base>/<tool>/<platform>/latest.txt?range=<constraint>`` with a single
line ``<version> <tarball-url>``.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import httpx

from node_builder.config import DEFAULT_NODEBIN_URL
from node_builder.errors import ToolchainError
from node_builder.logging import get_logger
from node_builder.security.archive import safe_extract_tar

log = get_logger(__name__)

PLATFORM = "linux-x64"


@dataclass(frozen=True)
class ResolvedRuntime:
    tool: str
    version: str
    url: str


class RuntimeInstaller(Protocol):
    def install(self, tool: str, constraint: str, target_dir: Path) -> ResolvedRuntime: ...


class NodebinInstaller:
    def __init__(
        self,
        base_url: str = DEFAULT_NODEBIN_URL,
        client: httpx.Client | None = None,
        retries: int = 3,
        timeout: float = 60.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        # only a client built here is closed by close()
        self._owns_client = client is None
        self.client = client or httpx.Client(
            transport=httpx.HTTPTransport(retries=retries),
            timeout=timeout,
            follow_redirects=True,
        )

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> NodebinInstaller:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def resolve(self, tool: str, constraint: str) -> ResolvedRuntime:
        url = f"{self.base_url}/{tool}/{PLATFORM}/latest.txt"
        try:
            resp = self.client.get(url, params={"range": constraint})
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise ToolchainError(
                f"Unable to resolve {tool} version {constraint!r}: {exc}"
            ) from exc
        parts = resp.text.strip().split()
        if len(parts) != 2:
            raise ToolchainError(f"No {tool} version matches {constraint!r}")
        return ResolvedRuntime(tool=tool, version=parts[0], url=parts[1])

    def _download(self, url: str) -> Path:
        fd, name = tempfile.mkstemp(prefix="node-builder-", suffix=".tar.gz")
        os.close(fd)
        tmpf = Path(name)
        try:
            with self.client.stream("GET", url) as r:
                r.raise_for_status()
                with open(tmpf, "wb") as out:
                    for chunk in r.iter_bytes():
                        out.write(chunk)
        except httpx.HTTPError as exc:
            tmpf.unlink(missing_ok=True)
            raise ToolchainError(f"Unable to download {url}: {exc}") from exc
        return tmpf

    def install(self, tool: str, constraint: str, target_dir: Path) -> ResolvedRuntime:
        """Resolve *constraint* for *tool* and unpack it into *target_dir*."""
        resolved = self.resolve(tool, constraint)
        log.info(
            "downloading runtime",
            extra={"fields": {"tool": tool, "version": resolved.version, "url": resolved.url}},
        )
        archive = self._download(resolved.url)
        try:
            safe_extract_tar(archive, target_dir, strip_components=1)
        except (RuntimeError, OSError) as exc:
            raise ToolchainError(f"Unable to unpack {tool} {resolved.version}: {exc}") from exc
        finally:
            archive.unlink(missing_ok=True)
        return resolved


def download_and_install_runtime(
    version_constraint: str,
    target_dir: Path,
    tool: str = "node",
    installer: RuntimeInstaller | None = None,
) -> ResolvedRuntime:
    if installer is not None:
        return installer.install(tool, version_constraint, target_dir)
    with NodebinInstaller() as owned:
        return owned.install(tool, version_constraint, target_dir)
