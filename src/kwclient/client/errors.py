"""Errors raised by the kiteworks client.

This module provides:
- ErrorFlag: categories of vendor error codes as a bit-set
- APIError: a classified vendor error carrying flags and messages
- classify_errors / error_from_response: the only place codes are mapped
- TransportError, ProtocolError, ConfigurationError for the other failure kinds
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from enum import IntFlag
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import httpx

VENDOR = "kiteworks"


class ErrorFlag(IntFlag):
    """Categories of kiteworks error codes."""

    NONE = 0
    AUTH_UNAUTHORIZED = 1 << 0
    AUTH_PROFILE_CHANGED = 1 << 1
    ACCESS_USER = 1 << 2
    INVALID_GRANT = 1 << 3
    ENTITY_DELETED_PERMANENTLY = 1 << 4
    ENTITY_NOT_FOUND = 1 << 5
    ENTITY_DELETED = 1 << 6
    ENTITY_PARENT_FOLDER_DELETED = 1 << 7
    REQUEST_METHOD_NOT_ALLOWED = 1 << 8
    INTERNAL_SERVER_ERROR = 1 << 9
    ENTITY_EXISTS = 1 << 10
    ENTITY_ROLE_IS_ASSIGNED = 1 << 11
    UNAVAILABLE = 1 << 12
    SERVICE_UNAVAILABLE = 1 << 13
    ENTITY_NOT_SCANNED = 1 << 14
    ENTITY_PARENT_FOLDER_MEMBER_EXISTS = 1 << 15

    # Auth token related errors.
    TOKEN_ERROR = AUTH_UNAUTHORIZED | AUTH_PROFILE_CHANGED | INVALID_GRANT


# Errors that are worth another attempt.
RETRYABLE = ErrorFlag.INTERNAL_SERVER_ERROR | ErrorFlag.TOKEN_ERROR

CODE_FLAGS: dict[str, ErrorFlag] = {
    "ERR_AUTH_UNAUTHORIZED": ErrorFlag.AUTH_UNAUTHORIZED,
    "UNAUTHORIZED_CLIENT": ErrorFlag.AUTH_UNAUTHORIZED,
    "ERR_AUTH_PROFILE_CHANGED": ErrorFlag.AUTH_PROFILE_CHANGED,
    "ERR_ACCESS_USER": ErrorFlag.ACCESS_USER,
    "INVALID_GRANT": ErrorFlag.INVALID_GRANT,
    "ERR_ENTITY_DELETED_PERMANENTLY": ErrorFlag.ENTITY_DELETED_PERMANENTLY,
    "ERR_ENTITY_NOT_FOUND": ErrorFlag.ENTITY_NOT_FOUND,
    "ERR_ENTITY_DELETED": ErrorFlag.ENTITY_DELETED,
    "ERR_ENTITY_PARENT_FOLDER_DELETED": ErrorFlag.ENTITY_PARENT_FOLDER_DELETED,
    "ERR_REQUEST_METHOD_NOT_ALLOWED": ErrorFlag.REQUEST_METHOD_NOT_ALLOWED,
    "ERR_ENTITY_EXISTS": ErrorFlag.ENTITY_EXISTS,
    "ERR_ENTITY_ROLE_IS_ASSIGNED": ErrorFlag.ENTITY_ROLE_IS_ASSIGNED,
    "UNAVAILABLE": ErrorFlag.UNAVAILABLE,
    "SERVICE_UNAVAILABLE": ErrorFlag.SERVICE_UNAVAILABLE,
    "ERR_ENTITY_NOT_SCANNED": ErrorFlag.ENTITY_NOT_SCANNED,
    "ERR_ENTITY_PARENT_FOLDER_MEMBER_EXISTS": ErrorFlag.ENTITY_PARENT_FOLDER_MEMBER_EXISTS,
}

INTERNAL_ERROR_MARKER = "ERR_INTERNAL_"


class KWClientError(Exception):
    """Base exception for kiteworks client errors."""


class TransportError(KWClientError):
    """Network or TLS failure talking to the server."""


class ProtocolError(KWClientError):
    """The server answered with something the client cannot use."""


class UploadIDNotFoundError(ProtocolError):
    """The upload record requested does not exist on the server."""

    def __init__(self, upload_id: int) -> None:
        super().__init__(f"Upload ID not found: {upload_id}")
        self.upload_id = upload_id


class EmptyUploadResponseError(ProtocolError):
    """The final chunk of an upload did not return the uploaded file."""

    def __init__(self) -> None:
        super().__init__("Unexpected empty response from server")


class ConfigurationError(KWClientError):
    """Session wiring is unusable; the operation cannot continue."""


class ReauthenticationError(ConfigurationError):
    """The stored token can no longer be refreshed.

    The token has been removed from the token store; the user must
    authenticate again from scratch.
    """


class TokenStoreError(KWClientError):
    """A token store failed to read or write."""


class APIError(KWClientError):
    """Error reported by the kiteworks API.

    Attributes:
        flags: Union of the categories of every code in the response.
        messages: Messages in the order the server sent them.
        status_code: HTTP status of the response, if any.
    """

    def __init__(
        self,
        flags: ErrorFlag,
        messages: Iterable[str],
        status_code: int | None = None,
    ) -> None:
        self.flags = ErrorFlag(flags)
        self.messages: tuple[str, ...] = tuple(messages)
        self.status_code = status_code
        super().__init__(self._render())

    def _render(self) -> str:
        if len(self.messages) == 1:
            return self.messages[0]
        return "\n".join(f"[{i}] {msg}" for i, msg in enumerate(self.messages))

    def has(self, mask: ErrorFlag) -> bool:
        """Check whether any category in mask applies to this error."""
        return bool(self.flags & mask)

    @property
    def is_token_error(self) -> bool:
        """The access token is invalid and must be refreshed."""
        return self.has(ErrorFlag.TOKEN_ERROR)

    @property
    def is_internal_error(self) -> bool:
        """The server failed internally."""
        return self.has(ErrorFlag.INTERNAL_SERVER_ERROR)

    @property
    def is_retryable(self) -> bool:
        """The call may succeed if attempted again."""
        return self.has(RETRYABLE)

    @property
    def is_not_found(self) -> bool:
        """The entity addressed does not exist (or no longer does)."""
        return self.has(
            ErrorFlag.ENTITY_NOT_FOUND
            | ErrorFlag.ENTITY_DELETED
            | ErrorFlag.ENTITY_DELETED_PERMANENTLY
        )

    @property
    def is_exists(self) -> bool:
        """The entity being created already exists."""
        return self.has(ErrorFlag.ENTITY_EXISTS)


def is_api_error(err: BaseException, mask: ErrorFlag) -> bool:
    """Check whether err is an APIError with any category in mask."""
    return isinstance(err, APIError) and err.has(mask)


class ErrorClassifier:
    """Accumulates vendor error codes into a single APIError.

    Flags are only ever added. Build the error with build() once all codes
    have been added.
    """

    def __init__(self) -> None:
        self._flags = ErrorFlag.NONE
        self._messages: list[str] = []

    def add(self, code: str, message: str) -> None:
        """Add one (code, message) pair."""
        code = (code or "").upper()
        flag = CODE_FLAGS.get(code)
        if flag is not None:
            self._flags |= flag
        elif INTERNAL_ERROR_MARKER in code:
            self._flags |= ErrorFlag.INTERNAL_SERVER_ERROR
        self._messages.append(f"{message}. ({VENDOR}:{code})")

    def build(self, status_code: int | None = None) -> APIError:
        """Return the classified error."""
        return APIError(self._flags, self._messages, status_code)

    def __bool__(self) -> bool:
        return bool(self._messages)


def classify_errors(
    errors: Iterable[tuple[str, str]],
    error: str | None = None,
    error_description: str | None = None,
    status_code: int | None = None,
) -> APIError:
    """Classify vendor error codes.

    Args:
        errors: (code, message) pairs in arrival order.
        error: Optional OAuth-style top level error code.
        error_description: Description for the OAuth-style error.
        status_code: HTTP status of the response.

    Returns:
        APIError with the union of the matched categories.
    """
    classifier = ErrorClassifier()
    for code, message in errors:
        classifier.add(code, message)
    if error_description:
        classifier.add(error or "", error_description)
    return classifier.build(status_code)


def error_from_body(body: bytes, status_code: int) -> APIError | None:
    """Classify a kiteworks error body.

    Returns:
        APIError if the body carries vendor error codes, None otherwise.
    """
    try:
        payload: Any = json.loads(body) if body else None
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None

    pairs = [
        (str(e.get("code", "")), str(e.get("message", "")))
        for e in payload.get("errors") or []
        if isinstance(e, dict)
    ]
    description = payload.get("error_description")
    if not pairs and not description:
        return None
    return classify_errors(
        pairs,
        error=payload.get("error"),
        error_description=description,
        status_code=status_code,
    )


def error_from_response(response: httpx.Response) -> APIError | None:
    """Convert a kiteworks response into an APIError.

    The response body must already be read.

    Returns:
        None for 2xx responses, the classified error otherwise.
    """
    if response.is_success:
        return None

    classified = error_from_body(response.content, response.status_code)
    if classified is not None:
        return classified

    if response.status_code == 401:
        return classify_errors(
            [("ERR_AUTH_UNAUTHORIZED", "Unauthorized access token")],
            status_code=401,
        )

    status = f"{response.status_code} {response.reason_phrase}".strip()
    return APIError(
        ErrorFlag.NONE,
        [f'{response.request.url.host} says "{status}."'],
        response.status_code,
    )
