"""Policy evaluation.

This module enforces:
- operation allowlist (only registered tools)
- host-disabled tools
- read-only mode (write tools denied)
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PolicyDecision:
    """Policy decision result."""

    allowed: bool
    reason: str | None = None


class Policy:
    """Policy engine."""

    def __init__(
        self,
        *,
        known_operations: frozenset[str],
        read_only_operations: frozenset[str],
        read_only: bool = False,
        disabled_operations: frozenset[str] = frozenset(),
    ) -> None:
        self._known = known_operations
        self._read_only_ops = read_only_operations
        self._read_only = read_only
        self._disabled = disabled_operations

    @property
    def read_only(self) -> bool:
        """Return whether write tools are disabled."""
        return self._read_only

    def check_operation_allowed(self, operation: str) -> PolicyDecision:
        """Return whether the operation may run under the host configuration."""
        if operation not in self._known:
            return PolicyDecision(False, "Operation is not allow-listed")
        if operation in self._disabled:
            return PolicyDecision(False, "Operation is disabled by the host")
        if self._read_only and operation not in self._read_only_ops:
            return PolicyDecision(False, "Server is in read-only mode")
        return PolicyDecision(True)

    def enabled_operations(self) -> list[str]:
        """Operations that would currently be allowed, sorted."""
        return sorted(op for op in self._known if self.check_operation_allowed(op).allowed)
