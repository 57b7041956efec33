"""package.json reader.

Heuristics:
- ``cacheDirectories`` wins over the older ``cache_directories`` spelling
- a manifest without ``engines.node`` is legal; callers default and warn
- malformed JSON or schema violations are fatal (PreconditionError)
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from node_builder.errors import PreconditionError
from node_builder.types import DependencyManifest, EnginesModel
from node_builder.validator import package_json_errors

_MISSING = object()


def _read_package_json(path: Path) -> dict:
    if not path.exists():
        raise PreconditionError(f"No package.json found in {path.parent}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise PreconditionError(f"Unable to parse package.json: {exc}") from exc
    if not isinstance(data, dict):
        raise PreconditionError("Unable to parse package.json: top level must be an object")
    return data


def _dig(data: dict, field: str) -> Any:
    node: Any = data
    for part in field.split("."):
        if not isinstance(node, dict) or part not in node:
            return _MISSING
        node = node[part]
    return node


def read_manifest_field(path: Path, field: str) -> Any | None:
    """Return the value at dotted *field* (e.g. ``engines.node``) or None if absent."""
    value = _dig(_read_package_json(path), field)
    return None if value is _MISSING else value


def load_manifest(path: Path) -> DependencyManifest:
    data = _read_package_json(path)
    problems = package_json_errors(data)
    if problems:
        raise PreconditionError("Unable to parse package.json: " + "; ".join(problems))

    cache_dirs = _dig(data, "cacheDirectories")
    if cache_dirs is _MISSING:
        cache_dirs = _dig(data, "cache_directories")

    engines = _dig(data, "engines")
    return DependencyManifest(
        name=data.get("name"),
        version=data.get("version"),
        engines=EnginesModel(**engines) if isinstance(engines, dict) else EnginesModel(),
        cache_directories=None if cache_dirs is _MISSING else list(cache_dirs),
        scripts=dict(data.get("scripts") or {}),
    )
