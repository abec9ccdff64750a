"""Error taxonomy for the provisioning pipeline.

Each error carries the process exit code the CLI reports for it, so the
command-line dispatcher can map failures without inspecting messages.
"""

from __future__ import annotations

from typing import Any, List, Optional


class BootstrapError(Exception):
    """Base class for every failure the bootstrap pipeline reports."""

    exit_code = 1


class ConfigurationInvalid(BootstrapError):
    exit_code = 3


class TokenFileMissing(BootstrapError):
    exit_code = 4

    def __init__(self, path: Any) -> None:
        super().__init__(f"Admin token file not found at {path}")
        self.path = path


class TokenFileInvalid(BootstrapError):
    exit_code = 4

    def __init__(self, path: Any, reason: str, preview: str = "") -> None:
        message = f"Could not extract a valid token from {path}: {reason}"
        if preview:
            message += f" (first 100 chars: {preview!r})"
        super().__init__(message)
        self.path = path
        self.reason = reason
        self.preview = preview


class ReadinessTimeout(BootstrapError):
    exit_code = 5

    def __init__(
        self,
        target: str,
        *,
        attempts: int,
        elapsed_seconds: float,
        timeout_seconds: float,
        last_error: Optional[str] = None,
    ) -> None:
        message = (
            f"{target} failed to become ready within {timeout_seconds:g} seconds "
            f"({attempts} attempts, {elapsed_seconds:.1f}s elapsed)"
        )
        if last_error:
            message += f"; last error: {last_error}"
        super().__init__(message)
        self.target = target
        self.attempts = attempts
        self.elapsed_seconds = elapsed_seconds
        self.timeout_seconds = timeout_seconds
        self.last_error = last_error


class ProvisioningAborted(BootstrapError):
    """A provisioning step ended outside its success and idempotent codes."""

    exit_code = 6

    def __init__(
        self,
        step_name: Optional[str],
        reason: str,
        *,
        http_status: Optional[int] = None,
        body: Any = None,
        completed: Optional[List[Any]] = None,
    ) -> None:
        super().__init__(reason)
        self.step_name = step_name
        self.reason = reason
        self.http_status = http_status
        self.body = body
        self.completed = list(completed or [])
        self.result: Any = None

    def __str__(self) -> str:
        parts = [f"step {self.step_name!r}: {self.reason}" if self.step_name else self.reason]
        if self.http_status is not None:
            parts.append(f"HTTP {self.http_status}")
        if self.body not in (None, ""):
            parts.append(f"body: {self.body}")
        return "; ".join(parts)


class AuthenticationFailed(ProvisioningAborted):
    exit_code = 7


class ExtractionError(ProvisioningAborted):
    """The response was successful but lacked the value a later step needs.

    Extractors raise it without a step name; the provisioner fills in the
    step, status and body before propagating.
    """

    exit_code = 8

    def __init__(self, reason: str, **kwargs: Any) -> None:
        step_name = kwargs.pop("step_name", None)
        super().__init__(step_name, reason, **kwargs)


class OutputWriteFailed(BootstrapError):
    exit_code = 9

    def __init__(self, path: Any, reason: str) -> None:
        super().__init__(f"Failed to write {path}: {reason}")
        self.path = path


class OperationCancelled(BootstrapError):
    exit_code = 130

    def __init__(self, message: str = "Operation cancelled by signal") -> None:
        super().__init__(message)


__all__ = [
    "AuthenticationFailed",
    "BootstrapError",
    "ConfigurationInvalid",
    "ExtractionError",
    "OperationCancelled",
    "OutputWriteFailed",
    "ProvisioningAborted",
    "ReadinessTimeout",
    "TokenFileInvalid",
    "TokenFileMissing",
]
