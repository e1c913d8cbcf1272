"""
애플리케이션 전용 예외 클래스들을 정의합니다.

모든 예외는 HTTP 상태 코드와 에러 코드를 가지고 있으며,
에러 분류기(app.utils.error_classifier)에서 그대로 응답으로 변환됩니다.
"""
from typing import Optional, Any, Dict, Sequence

from app.core.constants import ErrorCode


class LedgerException(Exception):
    """Trading Ledger 애플리케이션의 기본 예외 클래스"""

    status_code: int = 500
    default_message: str = "Internal server error"
    default_error_code: str = ErrorCode.INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        message = message or self.default_message
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}


class QueryParameterException(LedgerException):
    """클라이언트가 전달한 조회 파라미터 오류"""
    status_code = 400


class InvalidFilterFormat(QueryParameterException):
    """필터 문자열을 해석할 수 없는 경우"""
    default_message = "Invalid filter format"
    default_error_code = ErrorCode.INVALID_FILTER_FORMAT


class InvalidSortFormat(QueryParameterException):
    """정렬 문자열을 해석할 수 없는 경우"""
    default_message = "Bad sort format"
    default_error_code = ErrorCode.INVALID_SORT_FORMAT


class InvalidPaginationFormat(QueryParameterException):
    """page / length 값이 정수가 아닌 경우"""
    default_message = "Page and length must be integers"
    default_error_code = ErrorCode.INVALID_PAGINATION_FORMAT


class FieldNotFilterable(QueryParameterException):
    """허용 목록에 없는 필드로 필터링을 시도한 경우"""
    default_error_code = ErrorCode.FIELD_NOT_FILTERABLE

    def __init__(self, fields: Sequence[str]):
        self.fields = list(fields)
        if len(self.fields) == 1:
            message = f"Field is not filterable: {self.fields[0]}"
        else:
            message = f"Fields are not filterable: {', '.join(self.fields)}"
        super().__init__(message, details={"fields": self.fields})


class DataNotFoundException(LedgerException):
    """데이터를 찾을 수 없는 경우의 예외"""
    status_code = 404
    default_message = "Resource not found"
    default_error_code = ErrorCode.NOT_FOUND


class RateLimitException(LedgerException):
    """요청 제한 초과 예외"""
    status_code = 429
    default_message = "Rate limit exceeded"
    default_error_code = ErrorCode.RATE_LIMIT_EXCEEDED
