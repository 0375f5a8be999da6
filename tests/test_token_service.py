import time
import urllib.parse

import httpx
import pytest

from oidc.builders import build_refresh_request
from oidc.errors import TokenRequestError
from oidc.models import GRANT_AUTHORIZATION_CODE, TokenRequest
from oidc.token_service import TokenExchangeService
from tests.flow_helpers import SERVICE_CONFIGURATION, TOKEN_URL


def _code_request() -> TokenRequest:
    return TokenRequest(
        configuration=SERVICE_CONFIGURATION,
        client_id="client-1",
        grant_type=GRANT_AUTHORIZATION_CODE,
        code="code-1",
        redirect_uri="http://127.0.0.1:8765/callback",
        code_verifier="verifier-1",
    )


@pytest.mark.asyncio
async def test_exchange_code_success(httpx_mock) -> None:
    httpx_mock.add_response(
        url=TOKEN_URL,
        method="POST",
        json={
            "access_token": "AT1",
            "refresh_token": "RT1",
            "id_token": "ID1",
            "expires_in": 3600,
            "token_type": "Bearer",
        },
    )

    token = await TokenExchangeService().execute(_code_request())

    assert token.access_token == "AT1"
    assert token.refresh_token == "RT1"
    assert token.id_token == "ID1"
    assert token.expires_in == 3600
    assert token.access_token_expiration_time > time.time()


@pytest.mark.asyncio
async def test_exchange_code_posts_form(httpx_mock) -> None:
    httpx_mock.add_response(url=TOKEN_URL, method="POST", json={"access_token": "AT1"})

    await TokenExchangeService().execute(_code_request())

    sent = httpx_mock.get_request()
    form = dict(urllib.parse.parse_qsl(sent.content.decode()))
    assert sent.headers["accept"] == "application/json"
    assert form == {
        "grant_type": "authorization_code",
        "client_id": "client-1",
        "code": "code-1",
        "redirect_uri": "http://127.0.0.1:8765/callback",
        "code_verifier": "verifier-1",
    }


@pytest.mark.asyncio
async def test_refresh_posts_form(httpx_mock) -> None:
    httpx_mock.add_response(url=TOKEN_URL, method="POST", json={"access_token": "AT2"})

    token = await TokenExchangeService().execute(
        build_refresh_request(SERVICE_CONFIGURATION, "client-1", "RT1")
    )

    form = dict(urllib.parse.parse_qsl(httpx_mock.get_request().content.decode()))
    assert form == {"grant_type": "refresh_token", "client_id": "client-1", "refresh_token": "RT1"}
    assert token.refresh_token is None


@pytest.mark.asyncio
async def test_error_payload_raises(httpx_mock) -> None:
    httpx_mock.add_response(
        url=TOKEN_URL,
        method="POST",
        status_code=400,
        json={"error": "invalid_grant", "error_description": "Code already used."},
    )

    with pytest.raises(TokenRequestError) as excinfo:
        await TokenExchangeService().execute(_code_request())

    assert excinfo.value.error == "invalid_grant"
    assert excinfo.value.error_description == "Code already used."
    assert excinfo.value.status_code == 400


@pytest.mark.asyncio
async def test_non_json_error_raises(httpx_mock) -> None:
    httpx_mock.add_response(url=TOKEN_URL, method="POST", status_code=502, text="bad gateway")

    with pytest.raises(TokenRequestError, match="without a JSON object") as excinfo:
        await TokenExchangeService().execute(_code_request())

    assert excinfo.value.error == "invalid_response"
    assert excinfo.value.status_code == 502


@pytest.mark.asyncio
async def test_missing_access_token_raises(httpx_mock) -> None:
    httpx_mock.add_response(url=TOKEN_URL, method="POST", json={"token_type": "Bearer"})

    with pytest.raises(TokenRequestError, match="missing access_token"):
        await TokenExchangeService().execute(_code_request())


@pytest.mark.asyncio
async def test_network_error_raises(httpx_mock) -> None:
    httpx_mock.add_exception(httpx.ConnectError("connection refused"))

    with pytest.raises(TokenRequestError) as excinfo:
        await TokenExchangeService().execute(_code_request())

    assert excinfo.value.error == "network_error"


@pytest.mark.asyncio
async def test_perform_token_request_invokes_callback_once(httpx_mock) -> None:
    httpx_mock.add_response(url=TOKEN_URL, method="POST", json={"access_token": "AT1"})
    calls = []
    service = TokenExchangeService()

    task = service.perform_token_request(_code_request(), lambda *args: calls.append(args))
    await task

    assert len(calls) == 1
    response, error = calls[0]
    assert response.access_token == "AT1"
    assert error is None


@pytest.mark.asyncio
async def test_perform_token_request_reports_error(httpx_mock) -> None:
    httpx_mock.add_response(
        url=TOKEN_URL, method="POST", status_code=401, json={"error": "invalid_client"}
    )
    calls = []
    service = TokenExchangeService()

    service.perform_token_request(_code_request(), lambda *args: calls.append(args))
    await service.aclose()

    assert len(calls) == 1
    response, error = calls[0]
    assert response is None
    assert error.error == "invalid_client"


@pytest.mark.asyncio
async def test_uses_injected_client() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, request=request, json={"access_token": "AT-mock"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    service = TokenExchangeService(client=client)

    token = await service.execute(_code_request())
    await service.aclose()

    assert token.access_token == "AT-mock"
    assert not client.is_closed
    await client.aclose()


@pytest.mark.asyncio
async def test_overflowing_expires_in_raises(httpx_mock) -> None:
    httpx_mock.add_response(
        url=TOKEN_URL,
        method="POST",
        text='{"access_token": "AT1", "expires_in": 1e999}',
        headers={"content-type": "application/json"},
    )

    with pytest.raises(TokenRequestError, match="expires_in"):
        await TokenExchangeService().execute(_code_request())


@pytest.mark.asyncio
async def test_perform_token_request_reports_unexpected_failure(monkeypatch) -> None:
    calls = []
    service = TokenExchangeService()

    async def broken_execute(request):
        raise KeyError("boom")

    monkeypatch.setattr(service, "execute", broken_execute)

    service.perform_token_request(_code_request(), lambda *args: calls.append(args))
    await service.aclose()

    assert len(calls) == 1
    response, error = calls[0]
    assert response is None
    assert isinstance(error, TokenRequestError)
    assert error.error == "invalid_response"
