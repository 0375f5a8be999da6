from __future__ import annotations

import asyncio
from typing import Any, Protocol

from oidc.builders import (
    build_authorization_request,
    build_code_exchange_request,
    build_end_session_request,
    build_refresh_request,
)
from oidc.errors import AuthorizationError, TokenRequestError
from oidc.models import AuthorizationResponse, EndSessionResponse, TokenRequest, TokenResponse
from oidc.token_service import TokenCallback

from .auth_state import AuthState
from .config import AuthConfiguration
from .constants import (
    AUTH_REQUEST_CODE,
    AUTHORIZATION_IN_PROGRESS,
    END_SESSION_IN_PROGRESS,
    END_SESSION_NOT_CONFIGURED,
    END_SESSION_REQUEST_CODE,
    LAUNCH_FAILED,
    LOGGER,
    NO_ID_TOKEN,
    NO_REFRESH_TOKEN,
)
from .dispatch import ResultCode, UserAgentDispatcher
from .pending import ExternalResult, OperationPendingError
from .result import CANCEL, AuthResult, Failed, RefreshResult, Success


class TokenService(Protocol):
    def perform_token_request(self, request: TokenRequest, callback: TokenCallback) -> Any:
        ...


class FlowCoordinator:
    """Runs the authorization code flow as single awaitable operations.

    Each public coroutine resolves to exactly one ``AuthResult``. Failures are
    returned as ``Failed`` values, never raised. Only one authorization and
    one end session may be outstanding at a time; a second call while one is
    pending fails fast instead of replacing it.
    """

    def __init__(
        self,
        configuration: AuthConfiguration,
        *,
        dispatcher: UserAgentDispatcher,
        token_service: TokenService,
    ) -> None:
        self.configuration = configuration
        self.dispatcher = dispatcher
        self.token_service = token_service

    @property
    def service_configuration(self):
        return self.configuration.service_configuration

    def on_external_result(
        self,
        correlation_id: int,
        outcome: ResultCode | str,
        envelope: Any = None,
    ) -> bool:
        return self.dispatcher.on_result(correlation_id, outcome, envelope)

    async def authorize(self) -> AuthResult:
        request = build_authorization_request(
            self.service_configuration,
            self.configuration.client_id,
            self.configuration.auth_redirect_uri,
            self.configuration.scopes,
        )
        result = await self._dispatch(request.to_uri(), AUTH_REQUEST_CODE, AUTHORIZATION_IN_PROGRESS)
        if isinstance(result, Failed):
            return result

        if result.outcome is ResultCode.CANCELLED:
            LOGGER.info("Authorization cancelled by the user")
            return CANCEL

        try:
            response = AuthorizationResponse.from_envelope(request, result.envelope)
        except AuthorizationError as error:
            LOGGER.warning("Authorization response rejected: %s (%s)", error.error, error)
            return Failed()
        if response is None:
            LOGGER.warning("Authorization result carried no usable response")
            return Failed()

        auth_state = AuthState.from_authorization_response(response)
        token_response, error = await self._perform_token_request(
            build_code_exchange_request(response)
        )
        auth_state.update(token_response, error)
        if not auth_state.is_authorized:
            return Failed()

        LOGGER.info("Authorization completed")
        return Success(auth_state)

    async def clear_authorization(self, auth_state: AuthState) -> AuthResult:
        configuration = auth_state.configuration
        if configuration is None or not configuration.end_session_endpoint:
            return Failed(END_SESSION_NOT_CONFIGURED)
        if not auth_state.id_token:
            return Failed(NO_ID_TOKEN)

        request = build_end_session_request(
            configuration,
            auth_state.id_token,
            self.configuration.end_session_redirect_uri,
        )
        result = await self._dispatch(
            request.to_uri(), END_SESSION_REQUEST_CODE, END_SESSION_IN_PROGRESS
        )
        if isinstance(result, Failed):
            return result

        if result.outcome is not ResultCode.OK:
            LOGGER.info("End session cancelled by the user")
            return Failed()

        try:
            response = EndSessionResponse.from_envelope(request, result.envelope)
        except AuthorizationError as error:
            LOGGER.warning("End session response rejected: %s (%s)", error.error, error)
            return Failed()
        if response is None:
            LOGGER.warning("End session result carried no usable response")
            return Failed()

        LOGGER.info("End session completed")
        return Success(AuthState(configuration))

    async def refresh_token(self, auth_state: AuthState) -> RefreshResult:
        if not auth_state.refresh_token:
            return Failed(NO_REFRESH_TOKEN)

        request = build_refresh_request(
            auth_state.configuration or self.service_configuration,
            auth_state.client_id or self.configuration.client_id,
            auth_state.refresh_token,
        )
        token_response, error = await self._perform_token_request(request)
        auth_state.update(token_response, error)
        if not auth_state.is_authorized:
            return Failed()

        LOGGER.info("Token refresh completed")
        return Success(auth_state)

    async def aclose(self) -> None:
        aclose = getattr(self.token_service, "aclose", None)
        if aclose is not None:
            await aclose()

    async def _dispatch(
        self,
        request_uri: str,
        correlation_id: int,
        in_progress_message: str,
    ) -> ExternalResult | Failed:
        operations = self.dispatcher.operations
        try:
            future = operations.register(correlation_id)
        except OperationPendingError:
            LOGGER.warning("Rejected request %s: one is already pending", correlation_id)
            return Failed(in_progress_message)

        try:
            self.dispatcher.launch(request_uri, correlation_id)
        except Exception:
            LOGGER.exception("Failed to launch user agent for request %s", correlation_id)
            operations.discard(correlation_id, future)
            return Failed(LAUNCH_FAILED)

        try:
            return await future
        finally:
            operations.discard(correlation_id, future)

    async def _perform_token_request(
        self, request: TokenRequest
    ) -> tuple[TokenResponse | None, AuthorizationError | None]:
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def _settle(outcome: tuple) -> None:
            if not future.done():
                future.set_result(outcome)

        def _on_complete(
            response: TokenResponse | None, error: AuthorizationError | None
        ) -> None:
            loop.call_soon_threadsafe(_settle, (response, error))

        try:
            self.token_service.perform_token_request(request, _on_complete)
        except Exception as exc:
            LOGGER.exception("Token service failed to start grant_type=%s", request.grant_type)
            _settle((None, TokenRequestError("invalid_request", f"Token request failed: {exc}")))
        response, error = await future
        if error is not None:
            LOGGER.warning("Token request failed: %s (%s)", error.error, error)
        return response, error
