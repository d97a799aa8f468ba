"""Per-request metrics, request ids and log context."""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from floc.obs import logging as obs_logging
from floc.obs import metrics
from floc.settings import settings

REQUEST_ID_HEADER = "X-Request-Id"

_http_logger = obs_logging.get_logger("floc.http")


def route_label(request: Request) -> str:
	"""The matched route template, so ids in the path don't explode label cardinality."""
	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		if not settings.obs_enabled:
			return await call_next(request)

		request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
		request.state.request_id = request_id
		token = obs_logging.bind_context(
			request_id=request_id,
			route=request.url.path,
			user_id=request.headers.get("X-User-Id"),
		)
		started = time.perf_counter()
		status = 500
		try:
			response = await call_next(request)
			status = response.status_code
			response.headers.setdefault(REQUEST_ID_HEADER, request_id)
			return response
		except Exception:
			_http_logger.exception("http_request_failed", extra={"method": request.method})
			raise
		finally:
			elapsed = time.perf_counter() - started
			route = route_label(request)
			metrics.observe_request(route, request.method, status, elapsed)
			_http_logger.info(
				"http_request",
				extra={"method": request.method, "status": status, "latency_ms": round(elapsed * 1000, 2), "route": route},
			)
			obs_logging.reset_context(token)


def install(app) -> None:
	app.add_middleware(ObservabilityMiddleware)
