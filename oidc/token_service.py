from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import httpx

from oidc.errors import AuthorizationError, TokenRequestError
from oidc.models import TokenRequest, TokenResponse

LOGGER = logging.getLogger("oidc.token")

TokenCallback = Callable[[TokenResponse | None, AuthorizationError | None], None]


class TokenExchangeService:
    """Performs token endpoint requests over httpx.

    ``perform_token_request`` is the callback form used by the flow coordinator:
    the callback receives exactly one of a response or an error, once.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self._timeout = timeout
        self._logger = logger or LOGGER
        self._tasks: set[asyncio.Task] = set()

    def perform_token_request(
        self, request: TokenRequest, callback: TokenCallback
    ) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._perform(request, callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _perform(self, request: TokenRequest, callback: TokenCallback) -> None:
        try:
            response = await self.execute(request)
        except AuthorizationError as error:
            callback(None, error)
            return
        except Exception as error:
            self._logger.exception("Token request crashed grant_type=%s", request.grant_type)
            callback(None, TokenRequestError("invalid_response", f"Token request failed: {error}"))
            return
        callback(response, None)

    async def execute(self, request: TokenRequest) -> TokenResponse:
        own_client = self._client is None
        http_client = self._client or httpx.AsyncClient(
            timeout=self._timeout,
            event_hooks={"request": [self._log_request], "response": [self._log_response]},
        )

        try:
            response = await http_client.post(
                request.configuration.token_endpoint,
                data=request.form(),
                headers={"Accept": "application/json"},
            )
        except httpx.RequestError as error:
            self._logger.warning(
                "Token request failed grant_type=%s error=%s", request.grant_type, error
            )
            raise TokenRequestError("network_error", f"Token request failed: {error}") from error
        finally:
            if own_client:
                await http_client.aclose()

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not isinstance(payload, dict):
            raise TokenRequestError(
                "invalid_response",
                f"Token endpoint returned status {response.status_code} without a JSON object.",
                status_code=response.status_code,
            )

        if "error" in payload or response.status_code >= 400:
            error_code = str(payload.get("error") or "server_error")
            self._logger.warning(
                "Token request rejected grant_type=%s status=%s error=%s",
                request.grant_type,
                response.status_code,
                error_code,
            )
            raise TokenRequestError(
                error_code,
                payload.get("error_description"),
                status_code=response.status_code,
            )

        return TokenResponse.from_payload(request, payload)

    async def aclose(self) -> None:
        # An injected client belongs to the caller and stays open.
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _log_request(self, request: httpx.Request) -> None:
        self._logger.info("Token request %s %s", request.method, request.url)

    async def _log_response(self, response: httpx.Response) -> None:
        self._logger.info(
            "Token response %s %s -> %s",
            response.request.method,
            response.request.url,
            response.status_code,
        )
