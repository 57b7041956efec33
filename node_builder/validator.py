"""Schema validation for package.json."""

from __future__ import annotations

import json
from importlib import resources

from jsonschema import Draft202012Validator

# --- Schema loaders ---------------------------------------------------------


def _load_schema(package: str, resource_name: str) -> dict:
    with resources.files(package).joinpath(resource_name).open("r", encoding="utf-8") as f:
        return json.load(f)


def _package_schema() -> dict:
    return _load_schema("node_builder.schema", "package.schema.json")


# --- Public validators ------------------------------------------------------


def package_json_errors(data: object) -> list[str]:
    """Return readable messages for every schema violation in *data*."""
    validator = Draft202012Validator(_package_schema())
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    out: list[str] = []
    for err in errors:
        where = ".".join(str(p) for p in err.absolute_path) or "<root>"
        out.append(f"{where}: {err.message}")
    return out
