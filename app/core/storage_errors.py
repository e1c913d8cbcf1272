"""
저장소 계층 실패 유형 정의

SQLAlchemy / Redis 예외를 닫힌 집합의 StorageErrorKind 로 분류합니다.
저장소 계층(app.core.db.session_scope)이 자신의 예외를 직접 StorageError 로
바꿔 올리므로, 에러 분류기는 예외 이름이나 모양을 추측할 필요가 없습니다.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from redis import exceptions as redis_exceptions
from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import exc as orm_exc


class StorageErrorKind(str, Enum):
    """저장소 실패 유형"""

    # ORM / 매핑 계층
    VALIDATION = "validation"
    CAST = "cast"
    NOT_FOUND = "not_found"
    VERSION_CONFLICT = "version_conflict"
    PARALLEL_WRITE = "parallel_write"
    STRICT_SCHEMA = "strict_schema"
    DISCONNECTED = "disconnected"
    SERVER_SELECTION = "server_selection"
    ORM = "orm"

    # 드라이버 계층
    DUPLICATE_KEY = "duplicate_key"
    WRITE_CONCERN = "write_concern"
    TIMEOUT = "timeout"
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    DRIVER = "driver"


MAPPING_ERROR_KINDS = frozenset({
    StorageErrorKind.VALIDATION,
    StorageErrorKind.CAST,
    StorageErrorKind.NOT_FOUND,
    StorageErrorKind.VERSION_CONFLICT,
    StorageErrorKind.PARALLEL_WRITE,
    StorageErrorKind.STRICT_SCHEMA,
    StorageErrorKind.DISCONNECTED,
    StorageErrorKind.SERVER_SELECTION,
    StorageErrorKind.ORM,
})

DRIVER_ERROR_KINDS = frozenset({
    StorageErrorKind.DUPLICATE_KEY,
    StorageErrorKind.WRITE_CONCERN,
    StorageErrorKind.TIMEOUT,
    StorageErrorKind.NETWORK,
    StorageErrorKind.AUTHENTICATION,
    StorageErrorKind.DRIVER,
})


@dataclass(frozen=True)
class FieldError:
    """필드 단위 검증 실패

    - `path`: 실패한 필드명
    - `kind`: required / enum / minlength / maxlength / min / max / unique / 기타
    - `properties`: kind 별 부가 정보 (enum_values, minlength, max 등)
    """
    path: str
    kind: str
    properties: Dict[str, Any] = field(default_factory=dict)
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "kind": self.kind,
            "properties": dict(self.properties),
            "message": self.message,
        }


class StorageError(Exception):
    """저장소 계층이 분류한 실패"""

    def __init__(
        self,
        kind: StorageErrorKind,
        message: str = "",
        *,
        path: Optional[str] = None,
        value: Any = None,
        target_type: Optional[str] = None,
        key_value: Optional[Dict[str, Any]] = None,
        field_errors: Optional[List[FieldError]] = None,
    ):
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value
        self.path = path
        self.value = value
        self.target_type = target_type
        self.key_value = dict(key_value or {})
        self.field_errors = list(field_errors or [])

    @classmethod
    def validation(cls, field_errors: List[FieldError], message: str = "Validation failed") -> "StorageError":
        return cls(StorageErrorKind.VALIDATION, message, field_errors=field_errors)

    def __repr__(self) -> str:
        return f"StorageError(kind={self.kind.value!r}, message={self.message!r})"


# --- 드라이버 메시지 해석 ---

_PG_UNIQUE_DETAIL = re.compile(r"Key \((?P<fields>.+?)\)=\((?P<values>.*)\) already exists")
_SQLITE_CONSTRAINT_COLUMNS = re.compile(r"constraint failed: (?P<columns>.+)$", re.MULTILINE)
_PG_NOT_NULL_COLUMN = re.compile(r'null value in column "(?P<column>[^"]+)"')
_INSERT_COLUMNS = re.compile(r"INSERT INTO \S+ \((?P<columns>[^)]*)\)", re.IGNORECASE)
_UPDATE_ASSIGNMENT = re.compile(r'"?(\w+)"?\s*=\s*\?')

_PG_UNIQUE_VIOLATION = "23505"
_PG_NOT_NULL_VIOLATION = "23502"
_PG_FOREIGN_KEY_VIOLATION = "23503"
_PG_CHECK_VIOLATION = "23514"
_PG_AUTH_FAILURE = "28P01"
_PG_QUERY_CANCELED = "57014"
_PG_READ_ONLY_TRANSACTION = "25006"


def _pgcode(exc: sa_exc.DBAPIError) -> Optional[str]:
    return getattr(exc.orig, "pgcode", None)


def _driver_message(exc: sa_exc.DBAPIError) -> str:
    return str(exc.orig) if exc.orig is not None else str(exc)


def _column_names(raw: str) -> List[str]:
    """'table.col, table.col2' → ['col', 'col2']"""
    return [part.strip().rsplit(".", 1)[-1] for part in raw.split(",") if part.strip()]


def _bound_params(exc: sa_exc.DBAPIError) -> Dict[str, Any]:
    """실패한 구문의 바인딩 파라미터를 {컬럼: 값} 으로 복원 (qmark 위치 파라미터 포함)"""
    if isinstance(exc.params, dict):
        return exc.params
    if not isinstance(exc.params, (tuple, list)) or not exc.statement:
        return {}
    match = _INSERT_COLUMNS.search(exc.statement)
    if match:
        names = [name.strip().strip('"') for name in match.group("columns").split(",")]
    else:
        names = _UPDATE_ASSIGNMENT.findall(exc.statement)
    return dict(zip(names, exc.params))


def _duplicate_key_values(exc: sa_exc.IntegrityError) -> Dict[str, Any]:
    diag = getattr(exc.orig, "diag", None)
    detail = getattr(diag, "message_detail", None) or _driver_message(exc)
    match = _PG_UNIQUE_DETAIL.search(detail)
    if match:
        fields = [name.strip() for name in match.group("fields").split(",")]
        values = [value.strip() for value in match.group("values").split(",")]
        if len(fields) == len(values):
            return dict(zip(fields, values))
        return {name: None for name in fields}

    match = _SQLITE_CONSTRAINT_COLUMNS.search(_driver_message(exc))
    if not match:
        return {}
    columns = _column_names(match.group("columns"))
    params = _bound_params(exc)
    return {column: params.get(column) for column in columns}


def _translate_integrity_error(exc: sa_exc.IntegrityError) -> StorageError:
    message = _driver_message(exc)
    code = _pgcode(exc)

    if code == _PG_UNIQUE_VIOLATION or "UNIQUE constraint failed" in message or "duplicate key" in message:
        return StorageError(
            StorageErrorKind.DUPLICATE_KEY,
            "Duplicate key",
            key_value=_duplicate_key_values(exc),
        )

    if code == _PG_NOT_NULL_VIOLATION or "NOT NULL constraint failed" in message:
        match = _PG_NOT_NULL_COLUMN.search(message) or _SQLITE_CONSTRAINT_COLUMNS.search(message)
        if match:
            raw = match.groupdict().get("column") or match.group("columns")
            columns = _column_names(raw)
        else:
            columns = ["value"]
        return StorageError.validation([FieldError(path=column, kind="required") for column in columns])

    if code == _PG_FOREIGN_KEY_VIOLATION or "FOREIGN KEY constraint failed" in message:
        return StorageError.validation([
            FieldError(path="reference", kind="reference", message="Referenced record does not exist")
        ])

    if code == _PG_CHECK_VIOLATION or "CHECK constraint failed" in message:
        match = _SQLITE_CONSTRAINT_COLUMNS.search(message)
        path = match.group("columns").strip() if match else "value"
        return StorageError.validation([FieldError(path=path, kind="check")])

    return StorageError.validation([FieldError(path="value", kind="integrity")])


def _translate_operational_error(exc: sa_exc.OperationalError) -> StorageError:
    message = _driver_message(exc)
    lowered = message.lower()
    code = _pgcode(exc)

    if exc.connection_invalidated:
        return StorageError(StorageErrorKind.DISCONNECTED, "Database connection lost")
    if code == _PG_AUTH_FAILURE or "authentication failed" in lowered:
        return StorageError(StorageErrorKind.AUTHENTICATION, "Database authentication failed")
    if code == _PG_QUERY_CANCELED or "timeout" in lowered or "timed out" in lowered:
        return StorageError(StorageErrorKind.TIMEOUT, "Database operation timed out")
    if code == _PG_READ_ONLY_TRANSACTION or "read-only" in lowered or "readonly" in lowered:
        return StorageError(StorageErrorKind.WRITE_CONCERN, "Write was not accepted by the server")
    if any(marker in lowered for marker in ("could not connect", "connection refused", "unable to open database")):
        return StorageError(StorageErrorKind.SERVER_SELECTION, "Cannot connect to database server")
    if "server closed the connection" in lowered or "connection reset" in lowered:
        return StorageError(StorageErrorKind.NETWORK, "Database network error")
    return StorageError(StorageErrorKind.DRIVER, message)


def _translate_redis_error(exc: redis_exceptions.RedisError) -> StorageError:
    # AuthenticationError 와 TimeoutError 는 ConnectionError 의 하위 클래스이므로 먼저 확인
    if isinstance(exc, redis_exceptions.AuthenticationError):
        return StorageError(StorageErrorKind.AUTHENTICATION, "Cache authentication failed")
    if isinstance(exc, redis_exceptions.TimeoutError):
        return StorageError(StorageErrorKind.TIMEOUT, "Cache operation timed out")
    if isinstance(exc, redis_exceptions.ConnectionError):
        return StorageError(StorageErrorKind.NETWORK, "Cache network error")
    return StorageError(StorageErrorKind.DRIVER, str(exc))


def translate_storage_error(exc: BaseException) -> Optional[StorageError]:
    """SQLAlchemy / Redis 예외를 StorageError 로 변환합니다.

    저장소 예외가 아니면 None 을 반환합니다.
    """
    if isinstance(exc, StorageError):
        return exc

    if isinstance(exc, redis_exceptions.RedisError):
        return _translate_redis_error(exc)

    if isinstance(exc, orm_exc.StaleDataError):
        return StorageError(StorageErrorKind.VERSION_CONFLICT, "Document was modified by another process")
    if isinstance(exc, sa_exc.NoResultFound):
        return StorageError(StorageErrorKind.NOT_FOUND, "Document not found")
    if isinstance(exc, sa_exc.IllegalStateChangeError):
        return StorageError(StorageErrorKind.PARALLEL_WRITE, "Session was used by concurrent operations")
    if isinstance(exc, sa_exc.NoSuchColumnError):
        return StorageError(StorageErrorKind.STRICT_SCHEMA, str(exc))
    if isinstance(exc, sa_exc.DisconnectionError):
        return StorageError(StorageErrorKind.DISCONNECTED, "Database connection lost")
    if isinstance(exc, sa_exc.TimeoutError):
        # 커넥션 풀 대기 시간 초과
        return StorageError(StorageErrorKind.TIMEOUT, "Database operation timed out")

    if isinstance(exc, sa_exc.IntegrityError):
        return _translate_integrity_error(exc)
    if isinstance(exc, sa_exc.OperationalError):
        return _translate_operational_error(exc)
    if isinstance(exc, sa_exc.DataError):
        return StorageError(StorageErrorKind.CAST, "Invalid value", value=None)
    if isinstance(exc, sa_exc.InternalError):
        return StorageError(StorageErrorKind.WRITE_CONCERN, "Write operation failed")
    if isinstance(exc, sa_exc.DBAPIError):
        return StorageError(StorageErrorKind.DRIVER, _driver_message(exc))
    if isinstance(exc, sa_exc.StatementError) and isinstance(exc.orig, (TypeError, ValueError)):
        # 바인딩 단계에서 타입 변환 실패 (예: DateTime 컬럼에 문자열)
        return StorageError(StorageErrorKind.CAST, "Invalid value", value=str(exc.orig))
    if isinstance(exc, sa_exc.SQLAlchemyError):
        return StorageError(StorageErrorKind.ORM, str(exc))

    return None
