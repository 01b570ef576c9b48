from typing import Callable, List

import httpx
import pytest


class RecordingTransport(httpx.MockTransport):
    def __init__(self, handler):
        super().__init__(handler)
        self.is_closed = False

    async def aclose(self) -> None:
        self.is_closed = True


class DownstreamDouble:
    """Stands in for the target origin and records every outbound request."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.transports: List[RecordingTransport] = []
        self.responder: Callable[[httpx.Request], httpx.Response] = (
            lambda request: httpx.Response(200, stream=httpx.ByteStream(b""))
        )

    def respond_with(self, responder: Callable[[httpx.Request], httpx.Response]):
        self.responder = responder

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    def build_transport(self) -> RecordingTransport:
        transport = RecordingTransport(self._handle)
        self.transports.append(transport)
        return transport


@pytest.fixture
def downstream(monkeypatch):
    """Route the proxy's outbound calls to an in-memory double."""
    double = DownstreamDouble()
    monkeypatch.setattr(
        "cors_proxy.proxy.route.build_transport", double.build_transport
    )
    return double
