import logging
from typing import Optional, Dict
from contextlib import contextmanager

from opentelemetry.trace import Tracer

from cors_proxy.utils import redact_userinfo

logger = logging.getLogger("uvicorn.error")


@contextmanager
def traced_request(
    tracer: Tracer,
    operation: str,
    method: str,
    target: Optional[str],
    start_message: str,
    extra_attrs: Optional[Dict] = None,
):
    """Context manager to create a span, set common attributes, and log a start message."""
    with tracer.start_as_current_span(operation) as span:
        span.set_attribute("proxy.method", method)
        if target:
            span.set_attribute("proxy.target_url", redact_userinfo(target))
        if extra_attrs:
            for k, v in extra_attrs.items():
                span.set_attribute(k, v)
        if target:
            start_message = start_message.replace(target, redact_userinfo(target))
        logger.debug(start_message)
        yield span
