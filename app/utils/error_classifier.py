"""
에러 분류기

잡힌 예외(또는 예외가 아닌 값)를 하나의 ErrorRecord 로 변환합니다.
(조건, 처리기) 규칙을 우선순위 순서대로 평가하며 처음 일치한 규칙이 결과를 만든다.

우선순위
 1. HTTP 예외 / LedgerException
 2. 토큰 오류 (PyJWT)
 3. 저장소 매핑 계층 오류 (StorageError: 검증, 형변환, 버전 충돌 등)
 4. 저장소 드라이버 오류 (StorageError: 중복 키, 타임아웃, 네트워크 등)
 5. 외부 호출 오류 (httpx)
 6. 입력 검증 오류 (pydantic / FastAPI)
 7. 파일 시스템 오류 (errno)
 8. 네트워크 오류 (errno)
 9. 권한 오류
10. 요청 제한 오류
11. 기본 예외 타입 (클래스 이름)
12. 알 수 없는 값
"""
import errno
import socket
import traceback
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import httpx
import jwt
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.exceptions import LedgerException
from app.core.storage_errors import (
    DRIVER_ERROR_KINDS,
    MAPPING_ERROR_KINDS,
    FieldError,
    StorageError,
    StorageErrorKind,
)


@dataclass(frozen=True)
class ErrorRecord:
    """분류된 오류 (생성 후 변경하지 않음)"""
    status: int
    message: Union[str, Tuple[str, ...]]
    type: str
    code: Optional[str] = None
    details: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "message": list(self.message) if isinstance(self.message, tuple) else self.message,
            "type": self.type,
            "code": self.code,
            "details": self.details,
        }


Rule = Tuple[Callable[[Any], bool], Callable[[Any], ErrorRecord]]

# errno 이름 → (상태 코드, 메시지)
FILESYSTEM_ERRORS = {
    "ENOENT": (404, "File or directory not found"),
    "EACCES": (403, "Permission denied"),
    "EMFILE": (500, "Too many open files"),
    "ENOTDIR": (400, "Not a directory"),
}

NETWORK_ERRORS = {
    "ECONNREFUSED": (503, "Connection refused"),
    "ETIMEDOUT": (408, "Connection timeout"),
    "ENOTFOUND": (404, "Host not found"),
    "ECONNRESET": (502, "Connection reset"),
}

# errno 없이 발생하는 네트워크 예외
_NETWORK_ERROR_CLASSES = (
    (ConnectionRefusedError, "ECONNREFUSED"),
    (ConnectionResetError, "ECONNRESET"),
    (TimeoutError, "ETIMEDOUT"),
)

# 클래스 이름 → (상태 코드, 메시지). MRO 순서로 처음 일치하는 이름을 사용
NATIVE_ERRORS = {
    "TypeError": (400, "Type error occurred"),
    "NameError": (500, "Reference error occurred"),
    "AttributeError": (500, "Reference error occurred"),
    "ReferenceError": (500, "Reference error occurred"),
    "SyntaxError": (400, "Syntax error in request"),
    "IndexError": (400, "Value out of range"),
    "OverflowError": (400, "Value out of range"),
    "ValueError": (400, "Invalid value provided"),
}

# pydantic 오류 타입 → (검증 kind, ctx 키, properties 키)
_PYDANTIC_ERROR_KINDS = {
    "missing": ("required", None, None),
    "enum": ("enum", "expected", "enum_values"),
    "literal_error": ("enum", "expected", "enum_values"),
    "string_too_short": ("minlength", "min_length", "minlength"),
    "string_too_long": ("maxlength", "max_length", "maxlength"),
    "greater_than_equal": ("min", "ge", "min"),
    "less_than_equal": ("max", "le", "max"),
}

# 요청 위치를 나타내는 loc 접두어
_REQUEST_LOCATIONS = {"body", "query", "path", "header", "cookie"}


def validation_sentence(error: FieldError) -> str:
    """필드 검증 실패 하나를 사람이 읽을 수 있는 문장으로 만듭니다."""
    path = error.path
    properties = error.properties
    if error.kind == "required":
        return f"{path} is required"
    if error.kind == "enum":
        values = properties.get("enum_values")
        if isinstance(values, (list, tuple)):
            values = ", ".join(str(value) for value in values)
        return f"{path} must be one of: {values}"
    if error.kind == "minlength":
        return f"{path} must be at least {properties.get('minlength')} characters long"
    if error.kind == "maxlength":
        return f"{path} must not exceed {properties.get('maxlength')} characters"
    if error.kind == "min":
        return f"{path} must be at least {properties.get('min')}"
    if error.kind == "max":
        return f"{path} must not exceed {properties.get('max')}"
    if error.kind == "unique":
        return f"{path} must be unique"
    return error.message or f"Validation failed for {path}"


def field_errors_from_pydantic(errors: Sequence[Dict[str, Any]]) -> List[FieldError]:
    """pydantic 오류 목록을 FieldError 목록으로 변환합니다."""
    field_errors = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ())]
        if loc and loc[0] in _REQUEST_LOCATIONS:
            loc = loc[1:]
        path = ".".join(loc) or "value"

        kind, ctx_key, property_key = _PYDANTIC_ERROR_KINDS.get(error.get("type"), ("invalid", None, None))
        properties = {}
        ctx = error.get("ctx") or {}
        if ctx_key and ctx_key in ctx:
            properties[property_key] = ctx[ctx_key]
        field_errors.append(FieldError(path=path, kind=kind, properties=properties, message=error.get("msg")))
    return field_errors


def _errno_name(exc: Any) -> Optional[str]:
    code = getattr(exc, "errno", None)
    if isinstance(code, int):
        return errno.errorcode.get(code)
    return None


def _message_of(exc: Any) -> str:
    if isinstance(exc, BaseException):
        return str(exc)
    message = getattr(exc, "message", None)
    return message if isinstance(message, str) else ""


def _network_code(exc: Any) -> Optional[str]:
    if isinstance(exc, socket.gaierror):
        return "ENOTFOUND"
    if not isinstance(exc, OSError):
        return None
    code = _errno_name(exc)
    if code in NETWORK_ERRORS:
        return code
    for error_class, name in _NETWORK_ERROR_CLASSES:
        if isinstance(exc, error_class):
            return name
    return None


class ErrorClassifier:
    """
    우선순위 규칙 체인 기반 오류 분류기.
    - `debug`: True 면 분류되지 않은 기본 예외의 내부 메시지를 그대로 노출한다
    """

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.rules: Tuple[Rule, ...] = (
            (self._is_http_exception, self._handle_http_exception),
            (self._is_token_error, self._handle_token_error),
            (self._is_mapping_error, self._handle_mapping_error),
            (self._is_driver_error, self._handle_driver_error),
            (self._is_outbound_error, self._handle_outbound_error),
            (self._is_validation_error, self._handle_validation_error),
            (self._is_filesystem_error, self._handle_filesystem_error),
            (self._is_network_error, self._handle_network_error),
            (self._is_permission_error, self._handle_permission_error),
            (self._is_rate_limit_error, self._handle_rate_limit_error),
            (self._is_native_error, self._handle_native_error),
        )

    def classify(self, exc: Any) -> ErrorRecord:
        for predicate, handler in self.rules:
            if predicate(exc):
                return handler(exc)
        return self._handle_unknown(exc)

    # 1. HTTP 예외
    def _is_http_exception(self, exc: Any) -> bool:
        return isinstance(exc, (StarletteHTTPException, LedgerException))

    def _handle_http_exception(self, exc: Any) -> ErrorRecord:
        if isinstance(exc, LedgerException):
            return ErrorRecord(
                status=exc.status_code,
                message=exc.message,
                type=type(exc).__name__,
                code=exc.error_code,
                details=exc.details or None,
            )
        detail = exc.detail
        if isinstance(detail, dict) and "message" in detail:
            detail = detail["message"]
        return ErrorRecord(
            status=exc.status_code,
            message=detail if isinstance(detail, str) else str(detail),
            type=type(exc).__name__,
            code=f"HTTP_{exc.status_code}",
        )

    # 2. 토큰 오류
    def _is_token_error(self, exc: Any) -> bool:
        return isinstance(exc, jwt.exceptions.PyJWTError)

    def _handle_token_error(self, exc: Any) -> ErrorRecord:
        if isinstance(exc, jwt.exceptions.ExpiredSignatureError):
            return ErrorRecord(401, "Token has expired", "TokenExpiredError", "TOKEN_EXPIRED")
        if isinstance(exc, jwt.exceptions.ImmatureSignatureError):
            return ErrorRecord(401, "Token not active yet", "TokenNotActiveError", "TOKEN_NOT_ACTIVE")
        return ErrorRecord(401, "Invalid token", "InvalidTokenError", "INVALID_TOKEN")

    # 3. 저장소 매핑 계층 오류
    def _is_mapping_error(self, exc: Any) -> bool:
        return isinstance(exc, StorageError) and exc.kind in MAPPING_ERROR_KINDS

    def _handle_mapping_error(self, exc: StorageError) -> ErrorRecord:
        kind = exc.kind
        if kind is StorageErrorKind.VALIDATION:
            messages = tuple(validation_sentence(error) for error in exc.field_errors)
            return ErrorRecord(
                status=400,
                message=messages or ("Validation failed",),
                type="ValidationError",
                code="VALIDATION_ERROR",
                details=[error.to_dict() for error in exc.field_errors] or None,
            )
        if kind is StorageErrorKind.CAST:
            field = exc.path or "value"
            if exc.target_type == "ObjectId":
                return ErrorRecord(400, f"Invalid {field} format", "CastError", "INVALID_OBJECT_ID")
            return ErrorRecord(400, f"Invalid {field}: {exc.value}", "CastError", "INVALID_FORMAT")
        if kind is StorageErrorKind.NOT_FOUND:
            return ErrorRecord(404, "Document not found", "DocumentNotFoundError", "DOCUMENT_NOT_FOUND")
        if kind is StorageErrorKind.VERSION_CONFLICT:
            return ErrorRecord(
                409, "Document was modified by another process", "VersionError", "DOCUMENT_VERSION_CONFLICT"
            )
        if kind is StorageErrorKind.PARALLEL_WRITE:
            return ErrorRecord(
                409, "Cannot save document multiple times in parallel", "ParallelSaveError", "PARALLEL_SAVE_ERROR"
            )
        if kind is StorageErrorKind.STRICT_SCHEMA:
            return ErrorRecord(
                400, f"Field '{exc.path}' is not defined in schema", "StrictModeError", "FIELD_NOT_IN_SCHEMA"
            )
        if kind is StorageErrorKind.DISCONNECTED:
            return ErrorRecord(503, "Database connection lost", "DisconnectedError", "DATABASE_DISCONNECTED")
        if kind is StorageErrorKind.SERVER_SELECTION:
            return ErrorRecord(
                503, "Cannot connect to database server", "ServerSelectionError", "DATABASE_CONNECTION_FAILED"
            )
        return ErrorRecord(500, "Database operation failed", "DatabaseError", "DATABASE_ERROR", details=exc.message)

    # 4. 저장소 드라이버 오류
    def _is_driver_error(self, exc: Any) -> bool:
        return isinstance(exc, StorageError) and exc.kind in DRIVER_ERROR_KINDS

    def _handle_driver_error(self, exc: StorageError) -> ErrorRecord:
        kind = exc.kind
        if kind is StorageErrorKind.DUPLICATE_KEY:
            if len(exc.key_value) == 1:
                field, value = next(iter(exc.key_value.items()))
                return ErrorRecord(409, f'The {field} "{value}" is already in use', "DuplicateKeyError", "DUPLICATE_KEY")
            return ErrorRecord(
                409, "Duplicate entry found", "DuplicateKeyError", "DUPLICATE_KEY", details=exc.key_value or None
            )
        if kind is StorageErrorKind.WRITE_CONCERN:
            return ErrorRecord(
                500, "Write operation failed due to write concern", "WriteConcernError", "WRITE_CONCERN_ERROR"
            )
        if kind is StorageErrorKind.TIMEOUT:
            return ErrorRecord(408, "Database operation timed out", "TimeoutError", "DATABASE_TIMEOUT")
        if kind is StorageErrorKind.NETWORK:
            return ErrorRecord(503, "Database network error", "NetworkError", "DATABASE_NETWORK_ERROR")
        if kind is StorageErrorKind.AUTHENTICATION:
            return ErrorRecord(500, "Database authentication failed", "AuthenticationError", "DATABASE_AUTH_ERROR")
        return ErrorRecord(500, "Database driver error", "DriverError", "DATABASE_DRIVER_ERROR", details=exc.message)

    # 5. 외부 호출 오류
    def _is_outbound_error(self, exc: Any) -> bool:
        return isinstance(exc, httpx.HTTPError)

    def _handle_outbound_error(self, exc: httpx.HTTPError) -> ErrorRecord:
        status = 502
        message = str(exc) or "External service error"
        if isinstance(exc, httpx.HTTPStatusError):
            status = exc.response.status_code
            try:
                body = exc.response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and isinstance(body.get("message"), str):
                message = body["message"]
        return ErrorRecord(status, message, "ExternalServiceError", f"EXTERNAL_SERVICE_{status}")

    # 6. 입력 검증 오류
    def _is_validation_error(self, exc: Any) -> bool:
        return isinstance(exc, (PydanticValidationError, RequestValidationError))

    def _handle_validation_error(self, exc: Any) -> ErrorRecord:
        field_errors = field_errors_from_pydantic(exc.errors())
        messages = tuple(validation_sentence(error) for error in field_errors)
        return ErrorRecord(
            status=400,
            message=messages or ("Validation failed",),
            type="ValidationError",
            code="VALIDATION_ERROR",
            details=[error.to_dict() for error in field_errors] or None,
        )

    # 7. 파일 시스템 오류
    def _is_filesystem_error(self, exc: Any) -> bool:
        return isinstance(exc, OSError) and _errno_name(exc) in FILESYSTEM_ERRORS

    def _handle_filesystem_error(self, exc: OSError) -> ErrorRecord:
        code = _errno_name(exc)
        status, message = FILESYSTEM_ERRORS[code]
        return ErrorRecord(status, message, "FileSystemError", code)

    # 8. 네트워크 오류
    def _is_network_error(self, exc: Any) -> bool:
        return _network_code(exc) is not None

    def _handle_network_error(self, exc: Any) -> ErrorRecord:
        code = _network_code(exc)
        status, message = NETWORK_ERRORS[code]
        return ErrorRecord(status, message, "NetworkError", code)

    # 9. 권한 오류
    def _is_permission_error(self, exc: Any) -> bool:
        return (
            isinstance(exc, PermissionError)
            or _errno_name(exc) == "EPERM"
            or "permission" in _message_of(exc).lower()
        )

    def _handle_permission_error(self, exc: Any) -> ErrorRecord:
        return ErrorRecord(403, "Insufficient permissions", "PermissionError", "PERMISSION_DENIED")

    # 10. 요청 제한 오류
    def _is_rate_limit_error(self, exc: Any) -> bool:
        status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
        return "rate limit" in _message_of(exc).lower() or status == 429

    def _handle_rate_limit_error(self, exc: Any) -> ErrorRecord:
        return ErrorRecord(429, "Rate limit exceeded", "RateLimitError", "RATE_LIMIT_EXCEEDED")

    # 11. 기본 예외 타입
    def _is_native_error(self, exc: Any) -> bool:
        return isinstance(exc, Exception)

    def _handle_native_error(self, exc: Exception) -> ErrorRecord:
        status, message = 500, None
        for klass in type(exc).__mro__:
            if klass.__name__ in NATIVE_ERRORS:
                status, message = NATIVE_ERRORS[klass.__name__]
                break
        if message is None:
            # 분류되지 않은 내부 메시지는 운영 환경에서 노출하지 않는다
            message = (str(exc) or "Internal server error") if self.debug else "Internal server error"
        return ErrorRecord(
            status=status,
            message=message,
            type=type(exc).__name__,
            code="NATIVE_ERROR",
            details="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        )

    # 12. 알 수 없는 값
    def _handle_unknown(self, exc: Any) -> ErrorRecord:
        return ErrorRecord(500, "An unexpected error occurred", "UnknownError", "UNKNOWN_ERROR", details=repr(exc))


def classify_exception(exc: Any, debug: Optional[bool] = None) -> ErrorRecord:
    """현재 실행 환경 기준으로 예외를 분류합니다 (운영 환경이 아니면 debug)."""
    if debug is None:
        debug = not settings.is_production
    return ErrorClassifier(debug=debug).classify(exc)
