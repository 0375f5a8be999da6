from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from oidc.models import ServiceConfiguration

from .config import AuthConfiguration
from .constants import (
    DEFAULT_END_SESSION_REDIRECT_URI,
    DEFAULT_REDIRECT_URI,
    DEFAULT_SCOPES,
    LOGGER,
)

ENDPOINT_KEYS = (
    "OIDC_AUTHORIZATION_ENDPOINT",
    "OIDC_TOKEN_ENDPOINT",
    "OIDC_REGISTRATION_ENDPOINT",
    "OIDC_END_SESSION_ENDPOINT",
)

_HTTP_URL = TypeAdapter(AnyHttpUrl)


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_env(key: str, default: str | None = None) -> str | None:
    raw = os.getenv(key, "").strip()
    return raw or default


def get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number.")


def load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if not env_path.exists():
        return
    load_dotenv(env_path, override=True)


def validate_env() -> None:
    required = (
        "OIDC_CLIENT_ID",
        "OIDC_AUTHORIZATION_ENDPOINT",
        "OIDC_TOKEN_ENDPOINT",
    )
    missing = [key for key in required if not _get_env(key)]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    for key in ENDPOINT_KEYS:
        value = _get_env(key)
        if value is None:
            continue
        try:
            _HTTP_URL.validate_python(value)
        except ValidationError as error:
            raise RuntimeError(f"{key} must be a valid HTTP(S) URL.") from error

    if not _get_env("OIDC_END_SESSION_ENDPOINT"):
        LOGGER.warning("OIDC_END_SESSION_ENDPOINT is not set; end session will be unavailable.")

    scopes = (_get_env("OIDC_SCOPES") or DEFAULT_SCOPES).split()
    if "openid" not in scopes:
        LOGGER.warning("OIDC_SCOPES is missing openid; no ID token will be issued.")


def load_auth_configuration() -> AuthConfiguration:
    service_configuration = ServiceConfiguration(
        authorization_endpoint=_get_env("OIDC_AUTHORIZATION_ENDPOINT", ""),
        token_endpoint=_get_env("OIDC_TOKEN_ENDPOINT", ""),
        registration_endpoint=_get_env("OIDC_REGISTRATION_ENDPOINT"),
        end_session_endpoint=_get_env("OIDC_END_SESSION_ENDPOINT"),
    )
    return AuthConfiguration(
        client_id=_get_env("OIDC_CLIENT_ID", ""),
        service_configuration=service_configuration,
        scopes=_get_env("OIDC_SCOPES", DEFAULT_SCOPES),
        auth_redirect_uri=_get_env("OIDC_REDIRECT_URI", DEFAULT_REDIRECT_URI),
        end_session_redirect_uri=_get_env(
            "OIDC_END_SESSION_REDIRECT_URI", DEFAULT_END_SESSION_REDIRECT_URI
        ),
    )


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("OIDC_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
