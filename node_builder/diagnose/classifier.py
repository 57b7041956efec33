"""Post-hoc failure classification over the build log.

Structured signals (the failing step's exit code) are checked first; the log
pattern table is the fallback for third-party output with no exit reason.
Classification is read-only and never raises.
"""

from __future__ import annotations

from collections.abc import Sequence

from node_builder.diagnose.patterns import FAILURE_PATTERNS, FailurePattern
from node_builder.errors import BuildError
from node_builder.installer.process import LogBuffer
from node_builder.logging import get_logger
from node_builder.types import Diagnostic

log = get_logger(__name__)

_EXIT_CODE_DIAGNOSTICS = {
    127: Diagnostic(
        key="exit-command-not-found",
        title="Command not found",
        message="The failing step tried to run a program that is not on PATH.",
        severity="fatal",
    ),
    137: Diagnostic(
        key="exit-killed",
        title="Process killed",
        message="The failing step was killed (SIGKILL), usually by the memory limit.",
        severity="fatal",
    ),
}


def classify(
    log_buffer: LogBuffer, patterns: Sequence[FailurePattern] = FAILURE_PATTERNS
) -> list[Diagnostic]:
    text = log_buffer.text()
    return [
        Diagnostic(key=p.key, title=p.title, message=p.message, severity=p.severity)
        for p in patterns
        if p.matches(text)
    ]


def diagnose(failure: BuildError | None, log_buffer: LogBuffer) -> list[Diagnostic]:
    """Diagnostics for *failure*: exit-code signal first, then log patterns."""
    found: list[Diagnostic] = []
    try:
        exit_code = getattr(failure, "exit_code", None)
        if exit_code in _EXIT_CODE_DIAGNOSTICS:
            found.append(_EXIT_CODE_DIAGNOSTICS[exit_code])
        found.extend(classify(log_buffer))
    except Exception:  # classification must never turn into a second failure
        log.exception("failure classification crashed")
    log.info("diagnosed", extra={"fields": {"keys": [d.key for d in found]}})
    return found
