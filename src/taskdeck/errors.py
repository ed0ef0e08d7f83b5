"""Summary: Exception types shared by provider clients and services.

Importance: Lets callers tell "not connected" apart from "unauthorized" and other failures.
Alternatives: Raise RuntimeError everywhere and parse messages at call sites.
"""

from __future__ import annotations

import httpx


UNAUTHORIZED_MARKERS = ("unauthorized", "invalid_auth", "token_expired", "token_revoked")


class TaskDeckError(Exception):
    """Summary: Base class for TaskDeck errors."""


class NotConnectedError(TaskDeckError):
    """Summary: Raised when an operation targets a provider with no active session.

    Importance: Fails fast with a remedial hint instead of an opaque client error.
    Alternatives: Return empty results silently.
    """

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(
            f"{provider.capitalize()} service not initialized. "
            f"Please connect your {provider.capitalize()} account first."
        )


class ProviderError(TaskDeckError):
    """Summary: Raised when a provider API call fails.

    Importance: Carries the HTTP status so authorization failures can be detected.
    Alternatives: Re-raise raw httpx exceptions.
    """

    def __init__(self, provider: str, status: int | None, message: str) -> None:
        self.provider = provider
        self.status = status
        self.message = message
        prefix = f"{provider} API error"
        if status is not None:
            prefix = f"{prefix}: {status}"
        super().__init__(f"{prefix} - {message}")


def is_unauthorized(exc: BaseException) -> bool:
    """Summary: Decide whether an exception means the access token was rejected.

    Importance: Drives the single refresh-and-retry cycle in the session coordinator.
    Alternatives: Let each provider client expose its own check.
    """

    if isinstance(exc, ProviderError) and exc.status == 401:
        return True
    if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 401:
        return True
    if isinstance(exc, ProviderError):
        text = exc.message.lower()
    else:
        text = str(exc).lower()
    return any(marker in text for marker in UNAUTHORIZED_MARKERS)


def raise_for_response(provider: str, response: httpx.Response) -> None:
    """Summary: Convert a failed HTTP response into a ProviderError.

    Importance: Normalizes error reporting across vendor REST APIs.
    Alternatives: Call response.raise_for_status() and inspect httpx errors.
    """

    if response.is_success:
        return
    body = response.text.strip() or response.reason_phrase
    raise ProviderError(provider, response.status_code, body)
