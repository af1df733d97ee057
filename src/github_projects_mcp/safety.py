"""Safety helpers.

If an agent-provided input appears to be a credential, the request is rejected and the
suspected secret is not echoed. Free-text inputs are size-bounded before they reach GitHub.
"""

from __future__ import annotations

import re
from typing import Any

from .errors import SafeError

_CRED_FIELD_NAMES = {
    "token",
    "access_token",
    "authorization",
    "password",
    "private_key",
    "pem",
    "jwt",
}

_TOKEN_PREFIXES = (
    "ghp_",
    "gho_",
    "ghu_",
    "ghs_",
    "github_pat_",
)

_JWT_LIKE_RE = re.compile(r"^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+$")


def looks_like_secret_value(value: str) -> bool:
    """Return True if the value looks like a credential."""
    if not isinstance(value, str):
        return False
    trimmed = value.lstrip()
    lowered = trimmed.lower()
    if lowered.startswith("bearer "):
        return True
    if lowered.startswith(_TOKEN_PREFIXES):
        return True
    return len(trimmed) >= 40 and bool(_JWT_LIKE_RE.match(trimmed))


def looks_like_credential_field_name(field_name: str) -> bool:
    """Return True if a key name looks like a credential field."""
    if not isinstance(field_name, str):
        return False
    return field_name.strip().lower() in _CRED_FIELD_NAMES


def validate_no_secrets(obj: Any) -> None:
    """Reject any agent-provided input that appears to contain credentials.

    Nested objects are walked, so a `fields` map on update_project_card is covered too.
    """
    if isinstance(obj, dict):
        for k, v in obj.items():
            if looks_like_credential_field_name(str(k)):
                raise SafeError(code="UserInput", message="Credential-like fields are not allowed")
            validate_no_secrets(v)
        return
    if isinstance(obj, list):
        for item in obj:
            validate_no_secrets(item)
        return
    if isinstance(obj, str) and looks_like_secret_value(obj):
        raise SafeError(code="UserInput", message="Credential-like values are not allowed")


def enforce_max_bytes(*, text: str, max_bytes: int, what: str) -> None:
    """Enforce an upper bound on the UTF-8 size of a free-text input."""
    if len(text.encode("utf-8")) > max_bytes:
        raise SafeError(code="UserInput", message=f"{what} exceeds size limit", hint=f"Limit is {max_bytes} bytes")
