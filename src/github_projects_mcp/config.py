"""Configuration loading for github-projects-mcp.

Configuration is supplied by the host environment (the MCP client config), not by the agent.
Tokens, private key paths and installation ids are secrets and must never be emitted to
agents, logs or audit reasons.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import SafeError


@dataclass(frozen=True, slots=True)
class PolicyConfig:
    """Which tools the host allows."""

    read_only: bool = False
    disabled_tools: frozenset[str] = frozenset()


@dataclass(frozen=True, slots=True)
class LimitsConfig:
    """Non-functional safety limits."""

    # Network
    total_timeout_s: float = 60.0
    connect_timeout_s: float = 5.0
    read_timeout_s: float = 30.0

    # Retries: one attempt unless the host opts in.
    max_attempts: int = 1
    max_backoff_s: float = 5.0

    # Payload limits
    text_max_bytes: int = 64 * 1024
    max_item_pages: int = 10


@dataclass(frozen=True, slots=True)
class GitHubAppCredentials:
    """GitHub App installation binding."""

    app_id: int
    installation_id: int
    private_key_path: Path


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Complete server configuration.

    Exactly one of `token` and `app` is set.
    """

    token: str | None
    app: GitHubAppCredentials | None

    policy: PolicyConfig
    audit_log_path: Path | None
    audit_max_bytes: int
    audit_max_backups: int
    limits: LimitsConfig

    @property
    def auth_mode(self) -> str:
        return "token" if self.token else "github_app"


def _parse_bool(value: str | None) -> bool:
    if value is None:
        return False
    normalized = value.strip().lower()
    return normalized in {"1", "true", "yes", "on"}


def _parse_names(value: str | None) -> frozenset[str]:
    if not value:
        return frozenset()
    parts = [p.strip() for p in value.split(",")]
    return frozenset(p for p in parts if p)


def _load_app_credentials() -> GitHubAppCredentials:
    app_id_raw = os.getenv("GITHUB_APP_ID")
    installation_id_raw = os.getenv("GITHUB_APP_INSTALLATION_ID")
    private_key_path_raw = os.getenv("GITHUB_APP_PRIVATE_KEY_PATH")

    if not app_id_raw or not installation_id_raw or not private_key_path_raw:
        raise SafeError(
            code="Config",
            message=(
                "Missing required configuration: set GITHUB_PERSONAL_ACCESS_TOKEN, or all of "
                "GITHUB_APP_ID, GITHUB_APP_INSTALLATION_ID, GITHUB_APP_PRIVATE_KEY_PATH"
            ),
        )

    try:
        app_id = int(app_id_raw)
        installation_id = int(installation_id_raw)
    except ValueError as exc:
        raise SafeError(code="Config", message="GITHUB_APP_ID and GITHUB_APP_INSTALLATION_ID must be integers") from exc

    key_path = Path(private_key_path_raw)
    if not key_path.is_absolute():
        raise SafeError(code="Config", message="GITHUB_APP_PRIVATE_KEY_PATH must be an absolute path")

    # Fail fast if unreadable; never echo the path.
    try:
        if not key_path.is_file():
            raise SafeError(code="Config", message="GitHub App private key file is missing or not a file")
        _ = key_path.read_bytes()
    except SafeError:
        raise
    except Exception as exc:  # pylint: disable=broad-exception-caught
        raise SafeError(code="Config", message="GitHub App private key file is unreadable") from exc

    return GitHubAppCredentials(app_id=app_id, installation_id=installation_id, private_key_path=key_path)


def _load_limits() -> LimitsConfig:
    defaults = LimitsConfig()

    timeout_raw = os.getenv("GITHUB_PROJECTS_MCP_TIMEOUT_S")
    total_timeout_s = defaults.total_timeout_s
    if timeout_raw:
        try:
            total_timeout_s = float(timeout_raw)
        except ValueError as exc:
            raise SafeError(code="Config", message="GITHUB_PROJECTS_MCP_TIMEOUT_S must be a number") from exc
        if total_timeout_s <= 0:
            raise SafeError(code="Config", message="GITHUB_PROJECTS_MCP_TIMEOUT_S must be positive")

    attempts_raw = os.getenv("GITHUB_PROJECTS_MCP_MAX_ATTEMPTS")
    max_attempts = defaults.max_attempts
    if attempts_raw:
        try:
            max_attempts = int(attempts_raw)
        except ValueError as exc:
            raise SafeError(code="Config", message="GITHUB_PROJECTS_MCP_MAX_ATTEMPTS must be an integer") from exc
        if not 1 <= max_attempts <= 5:
            raise SafeError(code="Config", message="GITHUB_PROJECTS_MCP_MAX_ATTEMPTS must be between 1 and 5")

    return LimitsConfig(total_timeout_s=total_timeout_s, max_attempts=max_attempts)


def load_config_from_env() -> AppConfig:
    """Load and validate configuration from environment variables.

    A personal access token takes precedence over GitHub App credentials; user-owned
    projects are only reachable with a token.

    Raises:
        SafeError: If configuration is missing/invalid.
    """
    token = (os.getenv("GITHUB_PERSONAL_ACCESS_TOKEN") or "").strip() or None
    app = None if token else _load_app_credentials()

    audit_path_raw = os.getenv("GITHUB_PROJECTS_MCP_AUDIT_LOG_PATH")
    audit_path: Path | None = None
    if audit_path_raw:
        p = Path(audit_path_raw)
        if not p.is_absolute():
            raise SafeError(
                code="Config", message="GITHUB_PROJECTS_MCP_AUDIT_LOG_PATH must be an absolute path when set"
            )
        audit_path = p

    return AppConfig(
        token=token,
        app=app,
        policy=PolicyConfig(
            read_only=_parse_bool(os.getenv("GITHUB_PROJECTS_MCP_READ_ONLY")),
            disabled_tools=_parse_names(os.getenv("GITHUB_PROJECTS_MCP_DISABLED_TOOLS")),
        ),
        audit_log_path=audit_path,
        audit_max_bytes=5 * 1024 * 1024,
        audit_max_backups=2,
        limits=_load_limits(),
    )
