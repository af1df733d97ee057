"""Safe error types and serialization helpers.

Every expected failure a tool can hit is raised as a SafeError and turned into the
standard `{"ok": false, ...}` envelope by the dispatch layer. Messages must be stable and
must never carry credentials.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class SafeError(Exception):
    """An error safe to expose to agents.

    `details` carries structured, non-secret context (for example the change an
    unsupported operation would have made).
    """

    code: str
    message: str
    hint: str | None = None
    status_code: int | None = None
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message}\n{self.hint}"
        return self.message


def github_auth_forbidden(*, status_code: int) -> SafeError:
    """Return a safe Forbidden error for GitHub 401/403 responses."""
    return SafeError(
        code="Forbidden",
        message="GitHub rejected the credentials for this operation",
        hint="The token may be revoked or missing the 'project' scope",
        status_code=status_code,
    )


def safe_error_to_result(err: SafeError) -> dict[str, Any]:
    """Convert a SafeError into the standard tool envelope."""
    out = to_error_result(code=err.code, message=err.message, hint=err.hint)
    if err.details:
        out["details"] = err.details
    return out


def to_error_result(*, code: str, message: str, hint: str | None = None) -> dict[str, Any]:
    """Build a standard tool error envelope."""
    out: dict[str, Any] = {"ok": False, "code": code, "message": message}
    if hint:
        out["hint"] = hint
    return out


def user_input_error(message: str, hint: str | None = None) -> SafeError:
    """Error for invalid or missing tool arguments."""
    return SafeError(code="UserInput", message=message, hint=hint)


def not_implemented_error(
    message: str, *, hint: str | None = None, details: dict[str, Any] | None = None
) -> SafeError:
    """Error for operations the Projects v2 API cannot express."""
    return SafeError(code="NotImplemented", message=message, hint=hint, details=details)


def internal_error(message: str = "Internal error") -> dict[str, Any]:
    """Error envelope for unexpected failures."""
    return to_error_result(code="Internal", message=message)
