"""
FastAPI Middleware for Request Tracking, Metrics and Authentication

Features:
- Request trace IDs for log correlation
- Request/response logging with durations
- Prometheus metrics collection
- Bearer JWT validation (python-jose)
"""

import time
import uuid
from typing import Callable, Optional
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from imagefile.core.config import settings
from imagefile.core.errors import ErrorCode
from imagefile.core.logging_config import get_logger, set_trace_id, clear_trace_id


logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request trace IDs and request logging.

    Reuses an incoming X-Trace-ID or X-Correlation-ID header, otherwise
    generates one, and echoes it on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        trace_id = (
            request.headers.get("X-Trace-ID") or
            request.headers.get("X-Correlation-ID") or
            str(uuid.uuid4())
        )
        set_trace_id(trace_id)

        start_time = time.time()
        method = request.method
        path = request.url.path
        client_host = request.client.host if request.client else "unknown"

        logger.info(
            "request_started",
            method=method,
            path=path,
            client_host=client_host,
            user_agent=request.headers.get("user-agent", "unknown"),
        )

        try:
            response = await call_next(request)

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "request_completed",
                method=method,
                path=path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

            response.headers["X-Trace-ID"] = trace_id
            response.headers["X-Correlation-ID"] = trace_id
            return response

        except Exception as exc:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                "request_failed",
                method=method,
                path=path,
                client_host=client_host,
                duration_ms=round(duration_ms, 2),
                error_type=type(exc).__name__,
                error_message=str(exc),
                exc_info=True,
            )
            raise

        finally:
            clear_trace_id()


def endpoint_label(request: Request) -> str:
    """Route template of the matched endpoint, e.g. /api/v1/images/{image_id}.

    Requests that matched no route share the "unmatched" label.
    """
    route = request.scope.get("route")
    return getattr(route, "path_format", None) or "unmatched"


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware for automatic Prometheus metrics collection."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Import here to avoid circular imports
        from imagefile.api.v1.metrics import (
            http_requests_total,
            http_request_duration_seconds,
            http_requests_in_progress,
        )

        method = request.method
        path = request.url.path

        if path == "/metrics":
            return await call_next(request)

        http_requests_in_progress.labels(service=settings.SERVICE_NAME, method=method).inc()

        start_time = time.time()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response

        finally:
            duration = time.time() - start_time
            endpoint = endpoint_label(request)
            http_requests_in_progress.labels(service=settings.SERVICE_NAME, method=method).dec()
            http_requests_total.labels(
                service=settings.SERVICE_NAME,
                method=method,
                endpoint=endpoint,
                status=status_code
            ).inc()
            http_request_duration_seconds.labels(
                service=settings.SERVICE_NAME,
                method=method,
                endpoint=endpoint
            ).observe(duration)


class JWTAuthMiddleware(BaseHTTPMiddleware):
    """Bearer token validation with a shared secret.

    Flow:
        1. Extract Bearer token from Authorization header
        2. Validate signature and expiry
        3. Store validated payload in request.state

    Requests without a token pass through unauthenticated; endpoints that
    need a caller enforce it with the require_authenticated dependency.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        from jose import jwt
        from jose.exceptions import ExpiredSignatureError, JWTError

        token = self._get_token_from_header(request)

        if not token:
            request.state.authenticated = False
            return await call_next(request)

        try:
            payload = jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM],
                options={"verify_aud": False},
            )
        except ExpiredSignatureError:
            logger.info("jwt_expired", token_prefix=token[:20])
            return self._unauthorized_response("Token has expired")
        except JWTError as e:
            logger.warning("jwt_invalid", error=str(e), token_prefix=token[:20])
            return self._unauthorized_response(f"Invalid token: {e}")

        request.state.authenticated = True
        request.state.auth_payload = payload
        logger.debug("jwt_validated", user_id=payload.get("sub"))

        return await call_next(request)

    def _get_token_from_header(self, request: Request) -> Optional[str]:
        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return None

        parts = auth_header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            logger.debug("malformed_auth_header", auth_header=auth_header[:50])
            return None

        return parts[1]

    def _unauthorized_response(self, detail: str) -> Response:
        return JSONResponse(
            status_code=401,
            content={
                "code": ErrorCode.AUTH_INVALID_TOKEN,
                "message": detail,
                "details": {},
            },
        )
