from __future__ import annotations

import time
from dataclasses import dataclass, field

from oidc.errors import AuthorizationResponseError, TokenRequestError
from oidc.urls import append_query_params, normalize_envelope

GRANT_AUTHORIZATION_CODE = "authorization_code"
GRANT_REFRESH_TOKEN = "refresh_token"
RESPONSE_TYPE_CODE = "code"


@dataclass(frozen=True)
class ServiceConfiguration:
    authorization_endpoint: str
    token_endpoint: str
    registration_endpoint: str | None = None
    end_session_endpoint: str | None = None


@dataclass(frozen=True)
class AuthorizationRequest:
    configuration: ServiceConfiguration
    client_id: str
    redirect_uri: str
    scope: str
    state: str
    code_verifier: str
    code_challenge: str
    code_challenge_method: str = "S256"
    nonce: str | None = None
    response_type: str = RESPONSE_TYPE_CODE

    @property
    def scopes(self) -> list[str]:
        return self.scope.split()

    def to_uri(self) -> str:
        params = {
            "client_id": self.client_id,
            "response_type": self.response_type,
            "redirect_uri": self.redirect_uri,
            "scope": self.scope,
            "state": self.state,
            "code_challenge": self.code_challenge,
            "code_challenge_method": self.code_challenge_method,
        }
        if self.nonce:
            params["nonce"] = self.nonce
        return append_query_params(self.configuration.authorization_endpoint, params)


@dataclass(frozen=True)
class EndSessionRequest:
    configuration: ServiceConfiguration
    id_token_hint: str
    post_logout_redirect_uri: str
    state: str

    def to_uri(self) -> str:
        if not self.configuration.end_session_endpoint:
            raise RuntimeError("Service configuration has no end_session_endpoint.")
        return append_query_params(
            self.configuration.end_session_endpoint,
            {
                "id_token_hint": self.id_token_hint,
                "post_logout_redirect_uri": self.post_logout_redirect_uri,
                "state": self.state,
            },
        )


@dataclass(frozen=True)
class TokenRequest:
    configuration: ServiceConfiguration
    client_id: str
    grant_type: str
    code: str | None = None
    redirect_uri: str | None = None
    code_verifier: str | None = None
    refresh_token: str | None = None
    scope: str | None = None

    def form(self) -> dict[str, str]:
        fields = {
            "grant_type": self.grant_type,
            "client_id": self.client_id,
            "code": self.code,
            "redirect_uri": self.redirect_uri,
            "code_verifier": self.code_verifier,
            "refresh_token": self.refresh_token,
            "scope": self.scope,
        }
        return {key: value for key, value in fields.items() if value is not None}


def _check_redirect_error(params: dict[str, str]) -> None:
    error = params.get("error")
    if error:
        raise AuthorizationResponseError(error, params.get("error_description"))


@dataclass(frozen=True)
class AuthorizationResponse:
    request: AuthorizationRequest
    code: str
    state: str
    scope: str | None = None

    @classmethod
    def from_envelope(
        cls, request: AuthorizationRequest, envelope: object
    ) -> "AuthorizationResponse | None":
        params = normalize_envelope(envelope)
        if params is None:
            return None

        _check_redirect_error(params)

        state = params.get("state")
        if state != request.state:
            raise AuthorizationResponseError(
                "state_mismatch", "Authorization response state does not match the request."
            )

        code = params.get("code")
        if not code:
            return None

        return cls(request=request, code=code, state=state, scope=params.get("scope"))


@dataclass(frozen=True)
class EndSessionResponse:
    request: EndSessionRequest
    state: str | None = None

    @classmethod
    def from_envelope(
        cls, request: EndSessionRequest, envelope: object
    ) -> "EndSessionResponse | None":
        params = normalize_envelope(envelope)
        if params is None:
            return None

        _check_redirect_error(params)

        # Some providers drop state on logout; only a conflicting value is an error.
        state = params.get("state")
        if state is not None and state != request.state:
            raise AuthorizationResponseError(
                "state_mismatch", "End session response state does not match the request."
            )

        return cls(request=request, state=state)


@dataclass(frozen=True)
class TokenResponse:
    request: TokenRequest
    access_token: str
    token_type: str = "Bearer"
    refresh_token: str | None = None
    id_token: str | None = None
    expires_in: int | None = None
    access_token_expiration_time: float | None = None
    scope: str | None = None
    additional_parameters: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, request: TokenRequest, payload: dict) -> "TokenResponse":
        access_token = payload.get("access_token")
        expires_in = payload.get("expires_in")
        scope = payload.get("scope")

        if not isinstance(access_token, str) or not access_token:
            raise TokenRequestError("invalid_response", "Token response missing access_token.")
        if expires_in is not None:
            try:
                expires_in = int(expires_in)
            except (TypeError, ValueError, OverflowError):
                raise TokenRequestError(
                    "invalid_response", "Token response expires_in must be an integer."
                )
        if scope is not None and not isinstance(scope, str):
            raise TokenRequestError("invalid_response", "Token response scope must be a string.")

        known = {
            "access_token",
            "token_type",
            "refresh_token",
            "id_token",
            "expires_in",
            "scope",
        }
        return cls(
            request=request,
            access_token=access_token,
            token_type=payload.get("token_type") or "Bearer",
            refresh_token=payload.get("refresh_token") or None,
            id_token=payload.get("id_token") or None,
            expires_in=expires_in,
            access_token_expiration_time=(
                time.time() + expires_in if expires_in is not None else None
            ),
            scope=scope,
            additional_parameters={
                key: value for key, value in payload.items() if key not in known
            },
        )
