"""Failure pattern table, highest priority first.

Each pattern is independent. Order only decides the order diagnostics are
reported in, so the most specific, most actionable rules come first and the
generic ones last.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

Severity = Literal["fatal", "warning"]


@dataclass(frozen=True)
class FailurePattern:
    key: str
    title: str
    message: str
    severity: Severity
    conditions: tuple[re.Pattern[str], ...]

    def matches(self, text: str) -> bool:
        return any(c.search(text) for c in self.conditions)


def _rx(*patterns: str, flags: int = re.IGNORECASE) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, flags) for p in patterns)


FAILURE_PATTERNS: tuple[FailurePattern, ...] = (
    FailurePattern(
        key="lockfile-outdated",
        title="Lockfile outdated",
        message=(
            "The lockfile does not match package.json.\n"
            "Run the install locally (`yarn install` or `npm install`), "
            "commit the updated lockfile, and redeploy."
        ),
        severity="fatal",
        conditions=_rx(
            r"Your lockfile needs to be updated",
            r"can only install packages when your package\.json and "
            r"(package-lock\.json|npm-shrinkwrap\.json).* are in sync",
            r"Missing: \S+ from lock file",
        ),
    ),
    FailurePattern(
        key="missing-module",
        title="Missing module",
        message=(
            "A module required during the build could not be found.\n"
            "If it is only listed in devDependencies, move it to dependencies "
            "or set NPM_CONFIG_PRODUCTION=false."
        ),
        severity="fatal",
        conditions=_rx(r"Cannot find module", r"Error: Cannot resolve module"),
    ),
    FailurePattern(
        key="untracked-build-tool",
        title="Build tool not installed",
        message=(
            "A build script called a command that is not installed.\n"
            "Add the tool (grunt, gulp, bower, webpack ...) to dependencies in package.json."
        ),
        severity="fatal",
        conditions=_rx(
            r"\b(grunt|gulp|bower|webpack|tsc|ng)\b:? (command )?not found",
            r"command not found",
        ),
    ),
    FailurePattern(
        key="angular-resolution",
        title="Bower cannot resolve angular",
        message=(
            "Bower could not pick an angular version without prompting.\n"
            "Add a `resolutions` entry for angular to bower.json."
        ),
        severity="fatal",
        conditions=_rx(r"Unable to find suitable version for angular"),
    ),
    FailurePattern(
        key="package-not-found",
        title="Package not found in registry",
        message=(
            "A dependency could not be found in the registry.\n"
            "Check the package name and version, and registry credentials for private packages."
        ),
        severity="fatal",
        conditions=_rx(r"\bE404\b", r"404 Not Found", r"error An unexpected error occurred: .*404"),
    ),
    FailurePattern(
        key="native-build",
        title="Native module failed to compile",
        message=(
            "A dependency with a native addon failed to build with node-gyp.\n"
            "Make sure the module supports the selected node version."
        ),
        severity="fatal",
        conditions=_rx(r"gyp ERR!", r"node-pre-gyp ERR!"),
    ),
    FailurePattern(
        key="out-of-memory",
        title="Out of memory",
        message=(
            "The build ran out of memory.\n"
            "Reduce concurrent work in build scripts or raise --max-old-space-size."
        ),
        severity="fatal",
        conditions=_rx(r"JavaScript heap out of memory", r"\bENOMEM\b"),
    ),
    FailurePattern(
        key="network",
        title="Network error while fetching packages",
        message="The registry connection failed; this is often transient, try deploying again.",
        severity="warning",
        conditions=_rx(r"\bECONNRESET\b", r"\bETIMEDOUT\b", r"\bEAI_AGAIN\b", r"\bENOTFOUND\b"),
    ),
    FailurePattern(
        key="engine-mismatch",
        title="Engine version mismatch",
        message=(
            "A dependency does not support the installed node version.\n"
            "Set engines.node in package.json to a compatible range."
        ),
        severity="warning",
        conditions=_rx(r"Unsupported engine", r"is incompatible with this module"),
    ),
    FailurePattern(
        key="lifecycle-script",
        title="A package script failed",
        message="A lifecycle script exited with an error; the output above shows which one.",
        severity="warning",
        conditions=_rx(r"\bELIFECYCLE\b", r"Command failed with exit code \d+"),
    ),
)
