"""Error taxonomy and FastAPI handlers.

Every error leaves the service in the same envelope as a success response,
with ``success`` false and a machine-readable ``error.code``.
"""

import logging
from typing import Optional
from uuid import uuid4

from starlette.exceptions import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from mzone.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class InvalidPlanError(ValidationError):
    code = "invalid_plan"


class AuthError(AppError):
    code = "unauthorized"
    status_code = 401


class NotFoundError(AppError, LookupError):
    code = "not_found"
    status_code = 404


class GatewayError(AppError):
    """Upstream payment provider failure or malformed response.

    ``message`` is what the caller sees; ``detail`` is only logged.
    """
    code = "gateway_error"
    status_code = 500

    def __init__(self, message: str = "Payment provider error", *, detail: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.detail = detail


class PaymentInitializationFailed(GatewayError):
    code = "payment_initialization_failed"

    def __init__(self, message: str = "Payment initialization failed", **kwargs):
        super().__init__(message, **kwargs)


class PaymentVerificationFailed(AppError):
    code = "payment_verification_failed"
    status_code = 400


class WebhookSignatureError(AppError):
    code = "invalid_signature"
    status_code = 400


class InternalError(AppError):
    code = "internal_error"
    status_code = 500


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str) -> dict:
    return {
        "success": False,
        "message": message,
        "error": {"code": code, "message": message, "request_id": request_id},
    }


def _respond(status_code: int, code: str, message: str, rid: str) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=_error_payload(code, message, rid))
    response.headers["x-request-id"] = rid
    return response


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    logger = logging.getLogger("mzone")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    extra = {"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code}
    detail = getattr(exc, "detail", None)
    if detail:
        extra["upstream_detail"] = detail
    logger.log(log_level, "app.error", extra=extra)
    return _respond(exc.status_code, exc.code, exc.message, rid)


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if isinstance(exc.detail, str) and exc.detail else "HTTP error"
    if exc.status_code == 404 and message == "Not Found":
        message = "Endpoint not found"
    logger = logging.getLogger("mzone")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    return _respond(exc.status_code, code, message, rid)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    rid = _extract_request_id(request)
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    logger = logging.getLogger("mzone")
    logger.warning("request.invalid", extra={"request_id": rid, "error_code": "validation_error", "status": 400})
    return _respond(400, "validation_error", message, rid)


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("mzone")
    logger.error("unhandled.exception", exc_info=exc, extra={"request_id": rid, "error_code": "internal_error"})
    return _respond(500, "internal_error", "Internal server error", rid)
