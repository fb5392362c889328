"""
Error taxonomy for stack operations.

Every failure surfaced to the user is one of these:

    PreflightError        — validation before any side effect
    ExternalProcessError  — docker / tool invocation exited non-zero
    ReadinessTimeoutError — bounded wait exhausted
    HTTPContractError     — node or connector API answered non-2xx
    HTTPRequestError      — node or connector API never answered
    SetupFailedError      — first-time setup failed, rollback attempted

SetupFailedError is raised exactly once, by the orchestrator's rollback
policy.  Everything below it propagates unchanged.
"""

from __future__ import annotations

from pathlib import Path


class StackError(Exception):
    """Base class for all stack operation failures."""


# ── Pre-flight ──────────────────────────────────────────────────


class PreflightError(StackError):
    """Raised before anything has been created or started."""


class PortUnavailableError(PreflightError):
    """A port the stack needs is already accepting connections."""

    def __init__(self, port: int):
        self.port = port
        super().__init__(
            f"port {port} is unavailable. please check to see if another process is listening on that port"
        )


class StackNotFoundError(PreflightError):
    """No stack record exists under the given name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"stack '{name}' does not exist")


class StackExistsError(PreflightError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"stack '{name}' already exists")


class InvalidSelectionError(PreflightError):
    """Invalid database / provider / option combination."""


class UnknownProviderError(InvalidSelectionError):
    """A provider kind string has no registered implementation."""

    def __init__(self, family: str, kind: str, known: list[str]):
        self.family = family
        self.kind = kind
        super().__init__(
            f"unknown {family} provider '{kind}' (expected one of: {', '.join(known)})"
        )


# ── Runtime failures ────────────────────────────────────────────


class ExternalProcessError(StackError):
    """An external command exited non-zero."""

    def __init__(self, argv: list[str], returncode: int, stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or f"exit code {returncode}"
        super().__init__(f"{' '.join(self.argv)}: {detail}")


class ReadinessTimeoutError(StackError):
    """A readiness probe ran out of retries."""

    def __init__(self, target: str, elapsed: float):
        self.target = target
        self.elapsed = elapsed
        super().__init__(
            f"waited for {elapsed:.0f} seconds for {target} but it was never available"
        )


class HTTPContractError(StackError):
    """A control-surface call returned a non-success status."""

    def __init__(self, method: str, url: str, status: int, body: str):
        self.method = method
        self.url = url
        self.status = status
        self.body = body
        super().__init__(f"{method} {url} returned {status}: {body}")


class HTTPRequestError(StackError):
    """A control-surface call never got an HTTP answer."""

    def __init__(self, method: str, url: str, reason: str):
        self.method = method
        self.url = url
        self.reason = reason
        super().__init__(f"{method} {url} failed: {reason}")


class ManifestError(StackError):
    """The version manifest could not be resolved."""


class ContractError(StackError):
    """A contract file or a connector's deployment answer is unusable."""


class SetupFailedError(StackError):
    """First-time setup failed; carries the outcome of the rollback."""

    def __init__(
        self,
        cause: BaseException,
        runtime_dir: Path,
        reset_error: BaseException | None = None,
        step: str = "",
    ):
        self.cause = cause
        self.runtime_dir = runtime_dir
        self.reset_error = reset_error
        self.step = step
        prefix = f"{step}: " if step else ""
        if reset_error is None:
            message = (
                f"{prefix}{cause} - all changes rolled back "
                f"(runtime directory {runtime_dir} removed)"
            )
        else:
            message = f"{prefix}{cause} - error resetting stack: {reset_error}"
        super().__init__(message)
