from __future__ import annotations


class AuthorizationError(RuntimeError):
    """An OAuth2 error reported by the authorization server or raised locally."""

    def __init__(self, error: str, description: str | None = None) -> None:
        super().__init__(description or error)
        self.error = error
        self.error_description = description


class AuthorizationResponseError(AuthorizationError):
    """The redirect back from the user agent carried an error or a bad state."""


class TokenRequestError(AuthorizationError):
    def __init__(
        self,
        error: str,
        description: str | None = None,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(error, description)
        self.status_code = status_code
