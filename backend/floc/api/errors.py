"""Global error handlers mapping domain errors to JSON responses with request ids."""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from floc.domain.exceptions import (
	AlreadyConnected,
	FlocError,
	NotFound,
	PaymentNotRequired,
	PermissionDenied,
	SelfConnection,
	Unauthenticated,
	VerificationFailed,
	message_for,
)
from floc.infra.documents import StoreContention
from floc.obs import logging as obs_logging

CONTENTION_MESSAGE = "That took too long because of other activity. Please try again."


def get_request_id(request: Request, default: str = "unknown") -> str:
	rid = getattr(request.state, "request_id", None) or obs_logging.current_request_id()
	return rid or default


def status_for(exc: FlocError) -> int:
	if isinstance(exc, Unauthenticated):
		return status.HTTP_401_UNAUTHORIZED
	if isinstance(exc, NotFound):
		return status.HTTP_404_NOT_FOUND
	if isinstance(exc, PermissionDenied):
		return status.HTTP_403_FORBIDDEN
	if isinstance(exc, (AlreadyConnected, SelfConnection, PaymentNotRequired)):
		return status.HTTP_409_CONFLICT
	if isinstance(exc, VerificationFailed):
		return status.HTTP_400_BAD_REQUEST
	return status.HTTP_400_BAD_REQUEST


def error_body(request: Request, detail: str, message: str) -> dict:
	return {"detail": detail, "message": message, "request_id": get_request_id(request)}


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(StarletteHTTPException)
	async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
		payload = {"detail": exc.detail, "request_id": get_request_id(request)}
		return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

	@app.exception_handler(RequestValidationError)
	async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
		payload = {
			"detail": "validation_error",
			"errors": jsonable_errors(exc),
			"request_id": get_request_id(request),
		}
		return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=payload)

	@app.exception_handler(FlocError)
	async def floc_exc_handler(request: Request, exc: FlocError):  # type: ignore[override]
		return JSONResponse(status_code=status_for(exc), content=error_body(request, exc.reason, message_for(exc)))

	@app.exception_handler(StoreContention)
	async def contention_exc_handler(request: Request, exc: StoreContention):  # type: ignore[override]
		return JSONResponse(
			status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
			content=error_body(request, exc.reason, CONTENTION_MESSAGE),
			headers={"Retry-After": "1"},
		)

	@app.exception_handler(ValueError)
	async def value_exc_handler(request: Request, exc: ValueError):  # type: ignore[override]
		return JSONResponse(
			status_code=status.HTTP_400_BAD_REQUEST,
			content=error_body(request, "invalid_request", str(exc)),
		)


def jsonable_errors(exc: RequestValidationError) -> list:
	errors = []
	for error in exc.errors():
		errors.append({key: error[key] for key in ("loc", "msg", "type") if key in error})
	return errors
