from __future__ import annotations

import argparse
import asyncio
import signal

from oidc.token_service import TokenExchangeService
from oidcflow.auth_state import AuthState
from oidcflow.constants import APP_VERSION, AUTH_REQUEST_CODE, END_SESSION_REQUEST_CODE, LOGGER
from oidcflow.coordinator import FlowCoordinator
from oidcflow.dispatch import BrowserDispatcher, ResultCode
from oidcflow.env import get_env_float, load_auth_configuration, load_env, setup_logging, validate_env
from oidcflow.redirect_receiver import RedirectReceiver
from oidcflow.result import AuthResult, Cancel, Failed, Success


def create_coordinator() -> tuple[FlowCoordinator, RedirectReceiver]:
    load_env()
    setup_logging()
    validate_env()

    configuration = load_auth_configuration()
    dispatcher = BrowserDispatcher()
    token_service = TokenExchangeService(timeout=get_env_float("OIDC_TOKEN_TIMEOUT", 30.0))
    coordinator = FlowCoordinator(
        configuration,
        dispatcher=dispatcher,
        token_service=token_service,
    )
    receiver = RedirectReceiver(
        dispatcher,
        {
            configuration.auth_redirect_uri: AUTH_REQUEST_CODE,
            configuration.end_session_redirect_uri: END_SESSION_REQUEST_CODE,
        },
    )
    return coordinator, receiver


def _preview(token: str | None) -> str:
    if not token:
        return "<none>"
    if len(token) <= 12:
        return token
    return f"{token[:8]}...{token[-4:]}"


def describe(result: AuthResult, failure_message: str) -> str:
    if isinstance(result, Success):
        state = result.auth_state
        if not state.is_authorized:
            return "Signed out."
        return (
            f"Refresh Token = {_preview(state.refresh_token)}\n"
            f"Access Token = {_preview(state.access_token)}"
        )
    if isinstance(result, Cancel):
        return "Authentication canceled"
    if isinstance(result, Failed):
        return result.message or failure_message
    return failure_message


def _install_cancel_handler(coordinator: FlowCoordinator) -> bool:
    def _cancel_pending() -> None:
        for correlation_id in (AUTH_REQUEST_CODE, END_SESSION_REQUEST_CODE):
            coordinator.on_external_result(correlation_id, ResultCode.CANCELLED)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, _cancel_pending)
    except (NotImplementedError, RuntimeError):
        return False
    return True


async def run(*, refresh: bool = False, logout: bool = False) -> int:
    coordinator, receiver = create_coordinator()
    await receiver.start()
    handles_sigint = _install_cancel_handler(coordinator)
    try:
        result = await coordinator.authorize()
        print(describe(result, "Authentication failed"))
        if not isinstance(result, Success):
            return 1
        auth_state: AuthState = result.auth_state

        if refresh or (auth_state.refresh_token and auth_state.needs_token_refresh()):
            result = await coordinator.refresh_token(auth_state)
            print(describe(result, "Refresh token failed"))
            if not isinstance(result, Success):
                return 1

        if logout:
            result = await coordinator.clear_authorization(auth_state)
            print(describe(result, "Clear authentication failed"))
            if not isinstance(result, Success):
                return 1
        return 0
    finally:
        if handles_sigint:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)
        await receiver.stop()
        await coordinator.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Sign in with OpenID Connect.")
    parser.add_argument("--refresh", action="store_true", help="refresh the tokens after sign-in")
    parser.add_argument("--logout", action="store_true", help="end the session afterwards")
    parser.add_argument("--version", action="version", version=APP_VERSION)
    args = parser.parse_args()

    LOGGER.debug("Starting oidc-flow %s", APP_VERSION)
    raise SystemExit(asyncio.run(run(refresh=args.refresh, logout=args.logout)))


if __name__ == "__main__":
    main()
