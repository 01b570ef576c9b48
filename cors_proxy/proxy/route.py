import asyncio
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from opentelemetry import trace

from cors_proxy.proxy.headers import (
    ALLOW_METHODS,
    prepare_downstream_headers,
    prepare_response_headers,
    set_cors,
    set_no_cache,
)
from cors_proxy.proxy.redirects import rewrite_redirect_location
from cors_proxy.proxy.target import TargetRejection, resolve_target
from cors_proxy.utils import redact_userinfo
from cors_proxy.utils.traced_requests import traced_request
from cors_proxy.vars import PROXY_PATH, PROXY_TIMEOUT

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

REDIRECT_STATUS_CODES = {301, 302, 303, 307, 308}
BODYLESS_METHODS = {"GET", "HEAD"}


def build_transport() -> httpx.AsyncBaseTransport:
    """
    Create the transport for one downstream request.

    Requests go straight to the transport rather than through an
    ``AsyncClient``, so a 3xx is handed back as-is and its Location header is
    never parsed or followed before the proxy rewrites it.
    """
    return httpx.AsyncHTTPTransport()


def apply_headers(response: Response, headers: httpx.Headers) -> Response:
    for name, value in headers.multi_items():
        response.headers.append(name, value)
    return response


def rejection_response(rejection: TargetRejection) -> Response:
    headers = httpx.Headers()
    set_cors(headers)
    set_no_cache(headers)
    return apply_headers(
        PlainTextResponse(rejection.message, status_code=rejection.status_code),
        headers,
    )


def first_query_value(request: Request, name: str) -> Optional[str]:
    values = request.query_params.getlist(name)
    return values[0] if values else None


async def close_downstream(
    response: httpx.Response, transport: httpx.AsyncBaseTransport
):
    """Close the downstream body and its transport together."""
    try:
        await response.aclose()
    finally:
        await transport.aclose()


class RelayResponse(StreamingResponse):
    """
    Streams a downstream body and closes the downstream side however the
    relay ends: body finished, caller disconnected, or task cancelled.
    """

    def __init__(
        self,
        downstream: httpx.Response,
        transport: httpx.AsyncBaseTransport,
    ):
        super().__init__(downstream.aiter_raw(), status_code=downstream.status_code)
        self.downstream = downstream
        self.transport = transport

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            # Shielded so a cancelled relay still finishes closing
            await asyncio.shield(close_downstream(self.downstream, self.transport))


async def forward_to_target(request: Request) -> Response:
    """
    Relay a request to the target named by the ``url`` query parameter.

    Redirect responses are returned without a body and with their Location
    pointing back at the proxy. Everything else is streamed through. Every
    response gets permissive CORS headers and is marked uncacheable.
    Downstream transport errors are not caught.
    """
    raw_target = first_query_value(request, "url")

    with traced_request(
        tracer,
        operation="proxy_request",
        method=request.method,
        target=raw_target,
        start_message=f"Proxying {request.method} {PROXY_PATH} -> {raw_target}",
    ) as span:
        target = resolve_target(raw_target)
        if isinstance(target, TargetRejection):
            logger.info(
                f"Rejected proxy target {redact_userinfo(raw_target or '')!r}: "
                f"{target.status_code} {target.message}"
            )
            span.set_attribute("proxy.rejected", target.status_code)
            return rejection_response(target)

        with_body = request.method.upper() not in BODYLESS_METHODS
        downstream_request = httpx.Request(
            method=request.method,
            url=target,
            headers=prepare_downstream_headers(
                request.headers.items(), target, with_body
            ),
            content=request.stream() if with_body else None,
            extensions={"timeout": httpx.Timeout(PROXY_TIMEOUT).as_dict()},
        )

        transport = build_transport()
        try:
            downstream = await transport.handle_async_request(downstream_request)
        except httpx.HTTPError as e:
            logger.error(
                f"Downstream request to {redact_userinfo(str(target))} failed: {e!r}"
            )
            span.set_attribute("proxy.error", type(e).__name__)
            await transport.aclose()
            raise
        except BaseException:
            # Cancelled while waiting on the target
            await transport.aclose()
            raise
        downstream.request = downstream_request

        span.set_attribute("proxy.status_code", downstream.status_code)

        if downstream.status_code in REDIRECT_STATUS_CODES:
            response_headers = prepare_response_headers(
                downstream.headers, with_body=False
            )
            location = response_headers.get("location")
            if location:
                rewritten = rewrite_redirect_location(
                    request.url, location, base_url=target
                )
                response_headers["location"] = rewritten
                span.set_attribute(
                    "proxy.redirect_location", redact_userinfo(rewritten)
                )
                logger.info(
                    f"Rewrote {downstream.status_code} redirect "
                    f"{redact_userinfo(location)} -> {redact_userinfo(rewritten)}"
                )
            await close_downstream(downstream, transport)
            return apply_headers(
                Response(status_code=downstream.status_code), response_headers
            )

        return apply_headers(
            RelayResponse(downstream, transport),
            prepare_response_headers(downstream.headers),
        )


@router.api_route(PROXY_PATH, methods=ALLOW_METHODS.split(","))
async def proxy(request: Request):
    """Single proxy route; the method is passed through to the target."""
    return await forward_to_target(request)
