# FILE: scribe/actions/errors.py
"""Exception types for the action pipeline.

Fatal errors abort an invocation of process_full_response_actions. Adapter
errors are caught by the orchestrator and recorded as warnings/errors.
"""

from __future__ import annotations


class ActionPipelineError(Exception):
    """Base class for every error raised by the action pipeline."""


# =============================================================================
# Fatal
# =============================================================================

class ProjectNotFoundError(ActionPipelineError):
    """The chat has no linked project."""


class MessageNotFoundError(ActionPipelineError):
    """No assistant message with the given id exists in the chat."""


class DatabaseVersioningError(ActionPipelineError):
    """The database branch snapshot could not be taken."""


# =============================================================================
# Adapters (recoverable)
# =============================================================================

class DependencyInstallError(ActionPipelineError):
    """Both the preferred and the fallback package manager failed."""

    def __init__(self, message: str, stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr


class RemoteBackendError(ActionPipelineError):
    """The remote SQL/function backend rejected a request or was unreachable."""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


class MigrationWriteError(ActionPipelineError):
    """A SQL migration file could not be written."""


# =============================================================================
# Compile-check sandbox
# =============================================================================

class TypecheckError(ActionPipelineError):
    """Base class for compile-check failures."""


class TypecheckTimeoutError(TypecheckError):
    """The worker did not report within the time budget and was terminated."""


class TypecheckWorkerError(TypecheckError):
    """The worker reported a logical error (bad input, checker not runnable)."""


class TypecheckCrashError(TypecheckError):
    """The worker exited abnormally without reporting a result."""

    def __init__(self, message: str, exit_code: int):
        super().__init__(message)
        self.exit_code = exit_code
