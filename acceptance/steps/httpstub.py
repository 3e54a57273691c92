"""Steps running an in-process HTTP stub with canned responses."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

import requests

from acceptance.core.context import ScenarioContext
from acceptance.core.environment import Codec, Key
from acceptance.core.registry import StepCollector

logger = logging.getLogger(__name__)

NAME = "httpstub"

REQUEST_TIMEOUT_SECONDS = 10


@dataclass(frozen=True)
class Route:
    """Canned response for one method and path."""

    status: int
    body: str = ""
    content_type: str = "application/json"


class _Handler(BaseHTTPRequestHandler):
    server: _StubHTTPServer

    def _respond(self) -> None:
        path = self.path.split("?", 1)[0]
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length).decode("utf-8", errors="replace") if length else ""
        self.server.stub.record(self.command, path, body)

        route = self.server.stub.route(self.command, path)
        if route is None:
            route = Route(status=404, body=f"no stub for {self.command} {path}", content_type="text/plain")

        payload = route.body.encode("utf-8")
        self.send_response(route.status)
        self.send_header("Content-Type", route.content_type)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    do_GET = do_POST = do_PUT = do_DELETE = do_PATCH = do_HEAD = _respond

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("stub %s: %s", self.server.server_address, format % args)


class _StubHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, address: tuple[str, int], stub: StubServer) -> None:
        super().__init__(address, _Handler)
        self.stub = stub


@dataclass(eq=True)
class StubServer:
    """A listening stub; equality covers its address and routes."""

    host: str
    port: int
    routes: dict[tuple[str, str], Route] = field(default_factory=dict)
    requests: list[tuple[str, str, str]] = field(default_factory=list, compare=False)
    _server: _StubHTTPServer | None = field(default=None, compare=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, compare=False, repr=False)

    @classmethod
    def start(
        cls,
        host: str = "127.0.0.1",
        port: int = 0,
        routes: dict[tuple[str, str], Route] | None = None,
    ) -> StubServer:
        """Listen on ``host:port``; port 0 picks a free port."""
        stub = cls(host=host, port=port, routes=dict(routes or {}))
        server = _StubHTTPServer((host, port), stub)
        stub.port = server.server_address[1]
        stub._server = server
        threading.Thread(
            target=server.serve_forever,
            name=f"httpstub-{stub.port}",
            daemon=True,
        ).start()
        logger.debug("Stub HTTP server listening on %s", stub.url)
        return stub

    def stop(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
            logger.debug("Stub HTTP server on port %d stopped", self.port)

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def add_route(self, method: str, path: str, route: Route) -> None:
        with self._lock:
            self.routes[(method.upper(), path)] = route

    def route(self, method: str, path: str) -> Route | None:
        with self._lock:
            return self.routes.get((method.upper(), path))

    def record(self, method: str, path: str, body: str) -> None:
        with self._lock:
            self.requests.append((method, path, body))

    def received(self, path: str) -> int:
        with self._lock:
            return sum(1 for _, p, _ in self.requests if p == path)

    def as_variables(self) -> dict[str, str]:
        return {"STUB_URL": self.url}


def _dump(stub: StubServer) -> dict[str, Any]:
    return {
        "host": stub.host,
        "port": stub.port,
        "routes": [
            {
                "method": method,
                "path": path,
                "status": route.status,
                "body": route.body,
                "content_type": route.content_type,
            }
            for (method, path), route in stub.routes.items()
        ],
    }


def _load(payload: dict[str, Any]) -> StubServer:
    routes = {
        (r["method"], r["path"]): Route(r["status"], r["body"], r["content_type"])
        for r in payload["routes"]
    }
    return StubServer.start(payload["host"], payload["port"], routes)


SERVER = Key(
    "httpstub.server",
    owner=NAME,
    codec=Codec(dump=_dump, load=_load, detach=StubServer.stop),
    type=StubServer,
)
RESPONSE = Key("httpstub.response", owner=NAME)

KEYS = (SERVER, RESPONSE)


def stub_server(context: ScenarioContext) -> None:
    if context.env.get(SERVER, None) is not None:
        return
    stub = context.env.own(SERVER, StubServer.start(), StubServer.stop)
    context.logger.logf("Stub HTTP server listening on %s", stub.url)


def stub_responds(context: ScenarioContext, method: str, path: str, status: int) -> None:
    stub: StubServer = context.env.get(SERVER)
    stub.add_route(method, path, Route(status=status, body=context.text or ""))


def request_stub(context: ScenarioContext, method: str, path: str) -> None:
    stub: StubServer = context.env.get(SERVER)
    response = requests.request(
        method.upper(),
        f"{stub.url}{path}",
        data=context.text,
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    context.env.set(RESPONSE, response)


def response_status_should_be(context: ScenarioContext, status: int) -> None:
    response = context.env.get(RESPONSE)
    assert response.status_code == status, (
        f"expected status {status}, got {response.status_code}: {response.text}"
    )


def response_body_should_contain(context: ScenarioContext, text: str) -> None:
    response = context.env.get(RESPONSE)
    assert text in response.text, f"'{text}' not found in response body: {response.text}"


def stub_should_have_received(context: ScenarioContext, count: int, path: str) -> None:
    stub: StubServer = context.env.get(SERVER)
    received = stub.received(path)
    assert received == count, f"expected {count} request(s) to {path}, got {received}"


def add_steps_to(steps: StepCollector) -> None:
    steps.given("a stub HTTP server", stub_server)
    steps.given(
        'the stub responds to {method:w} "{path}" with status {status:d}',
        stub_responds,
        requires=(SERVER,),
    )
    steps.when('a {method:w} request is sent to the stub at "{path}"', request_stub, requires=(SERVER,))
    steps.then("the response status should be {status:d}", response_status_should_be, requires=(RESPONSE,))
    steps.then(
        'the response body should contain "{text}"', response_body_should_contain, requires=(RESPONSE,)
    )
    steps.then(
        'the stub should have received {count:d} request(s) to "{path}"',
        stub_should_have_received,
        requires=(SERVER,),
    )
