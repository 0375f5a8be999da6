from __future__ import annotations

import enum
import webbrowser
from collections.abc import Callable
from typing import Any

from .constants import LOGGER
from .pending import ExternalResult, PendingOperations


class ResultCode(enum.Enum):
    OK = "ok"
    CANCELLED = "cancelled"


_CANCEL_CODES = {"cancelled", "canceled"}


def parse_result_code(outcome: ResultCode | str) -> ResultCode:
    """Map a host result code onto ``ResultCode``.

    Codes are matched by name or value, ignoring case. Anything that is not a
    cancellation counts as a completed user-agent round trip.
    """
    if isinstance(outcome, ResultCode):
        return outcome
    if str(outcome).strip().lower() in _CANCEL_CODES:
        return ResultCode.CANCELLED
    return ResultCode.OK


class UserAgentDispatcher:
    """Launches the external user agent and routes its results back.

    Subclasses implement ``launch``. The host calls ``on_result`` when the
    user agent finishes; the dispatcher only matches the correlation id to
    the pending operation and knows nothing about the protocol.
    """

    def __init__(self, operations: PendingOperations | None = None) -> None:
        self.operations = operations if operations is not None else PendingOperations()

    def launch(self, request_uri: str, correlation_id: int) -> None:
        raise NotImplementedError

    def on_result(
        self,
        correlation_id: int,
        outcome: ResultCode | str,
        envelope: Any = None,
    ) -> bool:
        outcome = parse_result_code(outcome)
        LOGGER.info("User agent result for request %s: %s", correlation_id, outcome.value)
        return self.operations.resolve(correlation_id, ExternalResult(outcome, envelope))


class BrowserDispatcher(UserAgentDispatcher):
    def __init__(
        self,
        operations: PendingOperations | None = None,
        *,
        open_url: Callable[[str], bool] = webbrowser.open,
    ) -> None:
        super().__init__(operations)
        self._open_url = open_url

    def launch(self, request_uri: str, correlation_id: int) -> None:
        LOGGER.info("Opening browser for request %s", correlation_id)
        if not self._open_url(request_uri):
            LOGGER.warning("Could not open a browser. Visit this URL to continue: %s", request_uri)
