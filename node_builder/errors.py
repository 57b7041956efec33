"""Error taxonomy for the compile pipeline.

- PreconditionError: project state we refuse to build (checked before any mutation)
- ToolchainError: the runtime/package manager could not be installed
- PipelineFailure: a subprocess inside the installation pipeline exited non-zero
"""

from __future__ import annotations


class BuildError(Exception):
    """Base class; ``message`` is what the operator sees."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class PreconditionError(BuildError):
    pass


class ToolchainError(BuildError):
    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class PipelineFailure(BuildError):
    def __init__(self, state: str, command: list[str], exit_code: int) -> None:
        super().__init__(f"{' '.join(command)} exited with code {exit_code} during {state}")
        self.state = state
        self.command = command
        self.exit_code = exit_code
