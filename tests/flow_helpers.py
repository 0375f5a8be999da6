import asyncio
import urllib.parse

from oidc.errors import AuthorizationError
from oidc.models import GRANT_AUTHORIZATION_CODE, ServiceConfiguration, TokenRequest, TokenResponse
from oidcflow.auth_state import AuthState
from oidcflow.config import AuthConfiguration
from oidcflow.coordinator import FlowCoordinator
from oidcflow.dispatch import ResultCode, UserAgentDispatcher

SERVICE_CONFIGURATION = ServiceConfiguration(
    authorization_endpoint="https://idp.example.com/authorize",
    token_endpoint="https://idp.example.com/token",
    registration_endpoint="https://idp.example.com/register",
    end_session_endpoint="https://idp.example.com/logout",
)
TOKEN_URL = SERVICE_CONFIGURATION.token_endpoint


def build_configuration(service_configuration=SERVICE_CONFIGURATION) -> AuthConfiguration:
    return AuthConfiguration(
        client_id="client-1",
        service_configuration=service_configuration,
        scopes="openid email profile",
        auth_redirect_uri="http://127.0.0.1:8765/callback",
        end_session_redirect_uri="http://127.0.0.1:8765/logout",
    )


def query_of(uri: str) -> dict[str, str]:
    parsed = urllib.parse.urlparse(uri)
    return {key: values[0] for key, values in urllib.parse.parse_qs(parsed.query).items()}


class RecordingDispatcher(UserAgentDispatcher):
    def __init__(self, responder=None) -> None:
        super().__init__()
        self.launches: list[tuple[str, int]] = []
        self.responder = responder

    def launch(self, request_uri: str, correlation_id: int) -> None:
        self.launches.append((request_uri, correlation_id))
        if self.responder is not None:
            self.responder(self, request_uri, correlation_id)

    async def wait_for_launch(self, count: int = 1) -> tuple[str, int]:
        for _ in range(100):
            if len(self.launches) >= count:
                return self.launches[count - 1]
            await asyncio.sleep(0)
        raise AssertionError("user agent was never launched")


def approve(code: str = "code-1"):
    def responder(dispatcher, request_uri, correlation_id):
        state = query_of(request_uri)["state"]
        dispatcher.on_result(correlation_id, ResultCode.OK, {"code": code, "state": state})

    return responder


def respond(outcome, envelope=None):
    def responder(dispatcher, request_uri, correlation_id):
        del request_uri
        dispatcher.on_result(correlation_id, outcome, envelope)

    return responder


class FakeTokenService:
    """Answers token requests from a queue of payloads or errors."""

    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.requests: list[TokenRequest] = []

    def perform_token_request(self, request, callback) -> None:
        self.requests.append(request)
        outcome = self.outcomes.pop(0)
        loop = asyncio.get_running_loop()
        if isinstance(outcome, AuthorizationError):
            loop.call_soon(callback, None, outcome)
        else:
            loop.call_soon(callback, TokenResponse.from_payload(request, outcome), None)


def build_coordinator(*, dispatcher=None, token_service=None, configuration=None):
    dispatcher = dispatcher or RecordingDispatcher()
    token_service = token_service or FakeTokenService()
    coordinator = FlowCoordinator(
        configuration or build_configuration(),
        dispatcher=dispatcher,
        token_service=token_service,
    )
    return coordinator, dispatcher, token_service


def authorized_state(
    *,
    access_token: str = "AT1",
    refresh_token: str | None = "RT1",
    id_token: str | None = "ID1",
    configuration=SERVICE_CONFIGURATION,
) -> AuthState:
    request = TokenRequest(
        configuration=SERVICE_CONFIGURATION,
        client_id="client-1",
        grant_type=GRANT_AUTHORIZATION_CODE,
    )
    payload = {"access_token": access_token}
    if refresh_token:
        payload["refresh_token"] = refresh_token
    if id_token:
        payload["id_token"] = id_token

    state = AuthState(configuration)
    state.update(TokenResponse.from_payload(request, payload), None)
    return state
