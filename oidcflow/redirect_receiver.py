from __future__ import annotations

import asyncio
import html
import urllib.parse

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, Response
from starlette.routing import Route

from oidc.urls import is_loopback_redirect_uri

from .constants import LOGGER
from .dispatch import ResultCode, UserAgentDispatcher

_PAGE = """<!doctype html>
<html>
  <body>
    <h1>{title}</h1>
    <p>{message}</p>
  </body>
</html>
"""


def _page(title: str, message: str, status_code: int = 200) -> Response:
    return HTMLResponse(
        _PAGE.format(title=html.escape(title), message=html.escape(message)),
        status_code=status_code,
    )


class RedirectReceiver:
    """Loopback HTTP endpoint that receives the browser redirect.

    ``routes`` maps each redirect URI to the correlation id of the launch it
    answers. Every redirect is forwarded to the dispatcher as an ``OK`` result
    carrying the query parameters.
    """

    def __init__(self, dispatcher: UserAgentDispatcher, routes: dict[str, int]) -> None:
        if not routes:
            raise RuntimeError("RedirectReceiver needs at least one redirect URI.")

        endpoints: set[tuple[str, int]] = set()
        paths: dict[str, int] = {}
        for uri, correlation_id in routes.items():
            if not is_loopback_redirect_uri(uri):
                raise RuntimeError(
                    f"Redirect URI {uri} must be an http loopback URI with an explicit port."
                )
            parsed = urllib.parse.urlparse(uri)
            endpoints.add((parsed.hostname, parsed.port))
            path = parsed.path or "/"
            if paths.get(path, correlation_id) != correlation_id:
                raise RuntimeError(f"Redirect path {path} is shared by two requests.")
            paths[path] = correlation_id

        if len(endpoints) != 1:
            raise RuntimeError("All redirect URIs must share one host and port.")

        self.host, self.port = endpoints.pop()
        self._dispatcher = dispatcher
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task | None = None
        self.app = Starlette(
            routes=[
                Route(path, self._make_endpoint(correlation_id), methods=["GET"])
                for path, correlation_id in paths.items()
            ]
        )

    def _make_endpoint(self, correlation_id: int):
        async def endpoint(request: Request) -> Response:
            envelope = dict(request.query_params)
            delivered = self._dispatcher.on_result(correlation_id, ResultCode.OK, envelope)
            if not delivered:
                return _page(
                    "Nothing to complete",
                    "No sign-in is waiting for this response. You can close this window.",
                    status_code=400,
                )
            if envelope.get("error"):
                return _page(
                    "Request failed",
                    envelope.get("error_description") or envelope["error"],
                )
            return _page("Done", "You can close this window and return to the application.")

        return endpoint

    async def start(self) -> None:
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._server.serve())
        LOGGER.info("Redirect receiver listening on http://%s:%s", self.host, self.port)

    async def stop(self) -> None:
        if self._server is None or self._task is None:
            return
        self._server.should_exit = True
        await self._task
        self._server = None
        self._task = None
