"""Build settings loaded from the environment directory.

The platform hands the buildpack an ENV_DIR where every file is one config var:
the file name is the variable and the file content is its value.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ValidationError

from node_builder.errors import PreconditionError
from node_builder.logging import get_logger

log = get_logger(__name__)

# Never exported into subprocesses; these would break the toolchain PATH setup.
ENV_BLACKLIST = frozenset({"PATH", "GIT_DIR", "CPATH", "CPPATH", "LD_PRELOAD", "LIBRARY_PATH"})

DEFAULT_NODEBIN_URL = "https://nodebin.herokai.com/v1"


class BuildSettings(BaseModel):
    node_modules_cache: bool = True
    node_verbose: bool = False
    node_env: str = "production"
    npm_config_production: bool = True
    stack: str = "heroku-22"
    nodebin_url: str = DEFAULT_NODEBIN_URL


def load_env_dir(env_dir: Path) -> dict[str, str]:
    """Return config vars found in *env_dir*, minus the blacklisted ones."""
    values: dict[str, str] = {}
    if not env_dir.is_dir():
        return values
    for entry in sorted(env_dir.iterdir()):
        if not entry.is_file() or entry.name in ENV_BLACKLIST:
            continue
        try:
            values[entry.name] = entry.read_text(encoding="utf-8").strip()
        except UnicodeDecodeError as exc:
            raise PreconditionError(f"Config var {entry.name} is not valid UTF-8") from exc
    return values


def load_settings(env_dir: Path, stack: str | None = None) -> BuildSettings:
    values = load_env_dir(env_dir)
    data: dict[str, str] = {}
    for field in BuildSettings.model_fields:
        key = field.upper()
        if key in values and values[key] != "":
            data[field] = values[key]
    if stack and "stack" not in data:
        data["stack"] = stack
    try:
        settings = BuildSettings.model_validate(data)
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors()})
        bad = ", ".join(f"{name.upper()}={data.get(name, '')!r}" for name in fields)
        raise PreconditionError(f"Invalid config var value: {bad}") from exc
    log.info("settings loaded", extra={"fields": settings.model_dump()})
    return settings
