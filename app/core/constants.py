"""
애플리케이션 전체에서 사용하는 상수 정의

- 카테고리별로 그룹화하여 관리
- 매직 넘버를 상수로 치환하여 가독성 향상
"""
from typing import Final

# 로깅 레벨 상수
LOG_LEVELS: Final = {
    "DEBUG": "DEBUG",
    "INFO": "INFO",
    "WARNING": "WARNING",
    "ERROR": "ERROR",
    "CRITICAL": "CRITICAL",
}


class QueryConstants:
    """목록 조회(필터/정렬/페이지네이션) 관련 상수"""

    # 필터 문자열의 최상위 논리 연산자
    AND_KEY = "and"
    OR_KEY = "or"

    # 필드명과 연산자를 구분하는 구분자 (예: createdAt__day)
    OPERATOR_SEPARATOR = "__"

    # 정렬 방향
    ASCENDING = 1
    DESCENDING = -1

    DEFAULT_PAGE_SIZE = 10


class RepositoryConstants:
    """리포지토리 기본 동작 상수"""

    # 소프트 삭제 플래그 컬럼
    SOFT_DELETE_FIELD = "is_deleted"

    # 별도 지정이 없으면 조회 결과에서 제외되는 인증 정보 필드
    CREDENTIAL_FIELDS = ("password",)

    # 목록 조회 시 항상 제외되는 내부 필드
    DEFAULT_EXCLUDE_FIELDS = ("is_deleted", "version")

    # 타임스탬프 컬럼
    CREATED_AT_FIELD = "created_at"


class ReadConcernIsolation:
    """read concern 수준 → 트랜잭션 격리 수준 매핑"""

    LEVELS: Final = {
        "local": "READ COMMITTED",
        "available": "READ COMMITTED",
        "majority": "REPEATABLE READ",
        "snapshot": "REPEATABLE READ",
        "linearizable": "SERIALIZABLE",
    }


# 복제본으로 라우팅되는 read preference 값
REPLICA_READ_PREFERENCES: Final = frozenset({"secondary", "secondaryPreferred", "nearest"})


class SecurityConstants:
    """로그 마스킹 관련 상수"""

    # 키 이름에 포함되면 값이 마스킹되는 단어들 (대소문자 무시)
    SENSITIVE_FIELD_MARKERS = ("password", "token", "secret", "key", "auth", "authorization")
    REDACTED_PLACEHOLDER = "[REDACTED]"


class ErrorCode:
    """에러 응답 코드"""

    INVALID_FILTER_FORMAT = "INVALID_FILTER_FORMAT"
    INVALID_SORT_FORMAT = "INVALID_SORT_FORMAT"
    INVALID_PAGINATION_FORMAT = "INVALID_PAGINATION_FORMAT"
    FIELD_NOT_FILTERABLE = "FIELD_NOT_FILTERABLE"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
