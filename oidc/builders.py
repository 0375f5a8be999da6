from __future__ import annotations

import base64
import hashlib
import secrets

from oidc.models import (
    GRANT_AUTHORIZATION_CODE,
    GRANT_REFRESH_TOKEN,
    AuthorizationRequest,
    AuthorizationResponse,
    EndSessionRequest,
    ServiceConfiguration,
    TokenRequest,
)


def generate_code_verifier() -> str:
    while True:
        verifier = secrets.token_urlsafe(64)
        if 43 <= len(verifier) <= 128:
            return verifier


def generate_code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8").rstrip("=")


def generate_state() -> str:
    return secrets.token_urlsafe(16)


def build_authorization_request(
    configuration: ServiceConfiguration,
    client_id: str,
    redirect_uri: str,
    scope: str,
) -> AuthorizationRequest:
    code_verifier = generate_code_verifier()
    scope = " ".join(scope.split())
    # A nonce only means something when an ID token is going to be issued.
    nonce = generate_state() if "openid" in scope.split() else None

    return AuthorizationRequest(
        configuration=configuration,
        client_id=client_id,
        redirect_uri=redirect_uri,
        scope=scope,
        state=generate_state(),
        code_verifier=code_verifier,
        code_challenge=generate_code_challenge(code_verifier),
        nonce=nonce,
    )


def build_code_exchange_request(response: AuthorizationResponse) -> TokenRequest:
    request = response.request
    return TokenRequest(
        configuration=request.configuration,
        client_id=request.client_id,
        grant_type=GRANT_AUTHORIZATION_CODE,
        code=response.code,
        redirect_uri=request.redirect_uri,
        code_verifier=request.code_verifier,
    )


def build_refresh_request(
    configuration: ServiceConfiguration,
    client_id: str,
    refresh_token: str,
    *,
    scope: str | None = None,
) -> TokenRequest:
    return TokenRequest(
        configuration=configuration,
        client_id=client_id,
        grant_type=GRANT_REFRESH_TOKEN,
        refresh_token=refresh_token,
        scope=scope,
    )


def build_end_session_request(
    configuration: ServiceConfiguration,
    id_token_hint: str,
    post_logout_redirect_uri: str,
) -> EndSessionRequest:
    return EndSessionRequest(
        configuration=configuration,
        id_token_hint=id_token_hint,
        post_logout_redirect_uri=post_logout_redirect_uri,
        state=generate_state(),
    )
