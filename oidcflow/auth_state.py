from __future__ import annotations

import time

from oidc.errors import AuthorizationError
from oidc.models import AuthorizationResponse, ServiceConfiguration, TokenResponse

# Access tokens this close to expiry are treated as expired.
EXPIRY_TOLERANCE_SECONDS = 60.0


class AuthState:
    """Current token material and authorization status for one user.

    Token fields change only through ``update`` and
    ``update_from_authorization``; each applies a whole response or records a
    whole error, never part of one.
    """

    def __init__(self, configuration: ServiceConfiguration | None = None) -> None:
        self.configuration = configuration
        self.access_token: str | None = None
        self.refresh_token: str | None = None
        self.id_token: str | None = None
        self.scope: str | None = None
        self.access_token_expiration_time: float | None = None
        self.last_authorization_response: AuthorizationResponse | None = None
        self.last_token_response: TokenResponse | None = None
        self.authorization_error: AuthorizationError | None = None

    @classmethod
    def from_authorization_response(
        cls,
        response: AuthorizationResponse | None,
        error: AuthorizationError | None = None,
    ) -> "AuthState":
        configuration = response.request.configuration if response is not None else None
        state = cls(configuration)
        state.update_from_authorization(response, error)
        return state

    @property
    def is_authorized(self) -> bool:
        return self.authorization_error is None and bool(self.access_token or self.id_token)

    @property
    def client_id(self) -> str | None:
        if self.last_authorization_response is None:
            return None
        return self.last_authorization_response.request.client_id

    def needs_token_refresh(self, now: float | None = None) -> bool:
        if not self.access_token:
            return True
        if self.access_token_expiration_time is None:
            return False
        current = time.time() if now is None else now
        return current + EXPIRY_TOLERANCE_SECONDS >= self.access_token_expiration_time

    def update_from_authorization(
        self,
        response: AuthorizationResponse | None,
        error: AuthorizationError | None,
    ) -> None:
        _check_exclusive(response, error)
        if error is not None:
            self.authorization_error = error
            return

        self.last_authorization_response = response
        self.last_token_response = None
        self.authorization_error = None
        self.access_token = None
        self.refresh_token = None
        self.id_token = None
        self.access_token_expiration_time = None
        self.scope = response.scope or response.request.scope
        if self.configuration is None:
            self.configuration = response.request.configuration

    def update(
        self,
        token_response: TokenResponse | None,
        error: AuthorizationError | None,
    ) -> None:
        _check_exclusive(token_response, error)
        if error is not None:
            self.authorization_error = error
            return

        # A refresh may omit refresh_token or id_token; keep the ones we hold.
        self.last_token_response = token_response
        self.authorization_error = None
        self.access_token = token_response.access_token
        self.access_token_expiration_time = token_response.access_token_expiration_time
        if token_response.refresh_token:
            self.refresh_token = token_response.refresh_token
        if token_response.id_token:
            self.id_token = token_response.id_token
        if token_response.scope:
            self.scope = token_response.scope

    def __repr__(self) -> str:
        return (
            f"AuthState(is_authorized={self.is_authorized}, "
            f"has_refresh_token={bool(self.refresh_token)}, "
            f"has_id_token={bool(self.id_token)})"
        )


def _check_exclusive(response: object, error: object) -> None:
    if (response is None) == (error is None):
        raise ValueError("Exactly one of a response or an error must be provided.")
