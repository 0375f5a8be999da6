from __future__ import annotations

from dataclasses import dataclass

from oidc.models import ServiceConfiguration

from .constants import DEFAULT_END_SESSION_REDIRECT_URI, DEFAULT_REDIRECT_URI, DEFAULT_SCOPES


@dataclass(frozen=True)
class AuthConfiguration:
    client_id: str
    service_configuration: ServiceConfiguration
    scopes: str = DEFAULT_SCOPES
    auth_redirect_uri: str = DEFAULT_REDIRECT_URI
    end_session_redirect_uri: str = DEFAULT_END_SESSION_REDIRECT_URI
