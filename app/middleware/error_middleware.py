"""
에러 핸들링 미들웨어

처리되지 않은 모든 예외를 에러 분류기로 분류하고, 요청 정보와 함께 로그를 남긴 뒤
다음 형식의 응답으로 변환합니다.

    {"success": false,
     "error": {"type", "message", "code"?, "timestamp", "path", "method", "details"?}}

`details` 는 운영(production) 환경이 아닐 때만 포함됩니다.
"""
import json
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.core.config import settings
from app.core.exceptions import LedgerException
from app.middleware.logging_middleware import get_client_ip
from app.utils.error_classifier import classify_exception
from app.utils.helpers import convert_to_json_types, sanitize_payload
from app.utils.logging import get_logger

logger = get_logger(__name__)

# 요청 본문 조각을 담아 두는 ASGI scope 키
REQUEST_BODY_SCOPE_KEY = "ledger.request_body"


class RequestBodyCaptureMiddleware:
    """
    애플리케이션이 읽은 요청 본문을 scope 에 보관하는 ASGI 미들웨어.
    에러 로그에 (마스킹된) 요청 본문을 남기기 위해 사용한다.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        chunks = []
        scope[REQUEST_BODY_SCOPE_KEY] = chunks

        async def receive_and_capture() -> Message:
            message = await receive()
            if message["type"] == "http.request":
                chunks.append(message.get("body", b""))
            return message

        await self.app(scope, receive_and_capture, send)


def captured_request_body(request: Request) -> Any:
    """보관된 요청 본문을 마스킹하여 반환합니다. 본문이 없으면 None."""
    raw = b"".join(request.scope.get(REQUEST_BODY_SCOPE_KEY) or [])
    if not raw:
        return None
    try:
        return sanitize_payload(json.loads(raw))
    except ValueError:
        # JSON 이 아닌 본문은 내용 대신 크기만 남긴다
        return f"<{len(raw)} bytes>"


def render_error_response(request: Request, exc: Any) -> JSONResponse:
    """예외를 분류하여 로그를 남기고 표준 에러 응답을 만듭니다."""
    record = classify_exception(exc)
    timestamp = datetime.now(timezone.utc).isoformat()

    logger.log_request_error(
        {
            "method": request.method,
            "path": request.url.path,
            "status_code": record.status,
            "error_type": record.type,
            "error_message": record.to_dict()["message"],
            "error_code": record.code,
            "user_agent": request.headers.get("user-agent"),
            "ip": get_client_ip(request),
            "body": captured_request_body(request),
            "query": sanitize_payload(dict(request.query_params)),
            "details": convert_to_json_types(record.details),
            "occurred_at": timestamp,
        },
        exc_info=exc if isinstance(exc, BaseException) and record.status >= 500 else None,
    )

    error = {
        "type": record.type,
        "message": record.to_dict()["message"],
    }
    if record.code:
        error["code"] = record.code
    error.update({
        "timestamp": timestamp,
        "path": request.url.path,
        "method": request.method,
    })
    if not settings.is_production and record.details is not None:
        error["details"] = convert_to_json_types(record.details)

    headers: Optional[dict] = getattr(exc, "headers", None) if isinstance(exc, StarletteHTTPException) else None
    return JSONResponse(
        status_code=record.status,
        content={"success": False, "error": error},
        headers=headers,
    )


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """전역 에러 핸들링 미들웨어"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """요청 처리 중 발생하는 모든 예외를 처리합니다."""
        try:
            return await call_next(request)
        except Exception as exc:
            return render_error_response(request, exc)


async def _handle_exception(request: Request, exc: Exception) -> JSONResponse:
    return render_error_response(request, exc)


def register_exception_handlers(app: FastAPI) -> None:
    """
    FastAPI 가 자체적으로 응답을 만드는 예외들도 같은 형식으로 응답하도록 등록합니다.
    그 외 예외는 ErrorHandlingMiddleware 가 처리한다.
    """
    app.add_exception_handler(StarletteHTTPException, _handle_exception)
    app.add_exception_handler(RequestValidationError, _handle_exception)
    app.add_exception_handler(LedgerException, _handle_exception)
