"""
목록 조회 파라미터 디코더

클라이언트가 문자열로 전달한 필터 / 정렬 / 페이지네이션 파라미터를
구조화된 값으로 변환하는 순수 함수 모음입니다.

필터 문자열 형식 (작은따옴표 허용 JSON):

    {"and": {"holder_type": "USER", "leverage__gte": 10},
     "or": [{"account_name__like": "main"}, {"group__in": ["A", "B"]}]}

- 키는 `field` 또는 `field__operator` (기본 연산자 eq)
- 연산자: eq, like, in, gt, lt, gte, lte, ne, month, day
"""
import calendar
import json
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from app.core.constants import QueryConstants
from app.core.exceptions import (
    FieldNotFilterable,
    InvalidFilterFormat,
    InvalidPaginationFormat,
    InvalidSortFormat,
)
from app.schemas.query import PaginationRequest, PaginationResult
from app.utils.logging import get_logger
from app.utils.object_ref import ObjectRef

logger = get_logger(__name__)

_CALENDAR_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_CALENDAR_MONTH = re.compile(r"^(\d{4})-(\d{2})$")


class FilterOperator(str, Enum):
    """필터 연산자"""

    EQ = "eq"
    LIKE = "like"
    IN = "in"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    NE = "ne"
    MONTH = "month"
    DAY = "day"


@dataclass(frozen=True)
class DateRange:
    """반개구간 [start, end)"""
    start: datetime
    end: datetime


@dataclass(frozen=True)
class Condition:
    """단일 필드 조건 (field__operator: value)"""
    field: str
    operator: FilterOperator
    value: Any


@dataclass(frozen=True)
class FilterPredicate:
    """디코딩된 필터

    - `all_of`: and 그룹 조건 (모두 만족)
    - `any_of`: or 그룹 조건 (하나 이상 만족)
    """
    all_of: Tuple[Condition, ...] = ()
    any_of: Tuple[Condition, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.all_of and not self.any_of

    @property
    def fields(self) -> List[str]:
        """조건에 사용된 필드명 (등장 순서, 중복 제거)"""
        seen: Dict[str, None] = {}
        for condition in self.all_of + self.any_of:
            seen.setdefault(condition.field, None)
        return list(seen)


def _parse_calendar_date(value: Any) -> Optional[datetime]:
    """'YYYY-MM-DD' 문자열이면 해당 날짜 00:00 UTC 를 반환합니다."""
    if not isinstance(value, str):
        return None
    match = _CALENDAR_DATE.match(value)
    if not match:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None


def _parse_calendar_month(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    match = _CALENDAR_MONTH.match(value)
    if not match:
        return None
    year, month = (int(part) for part in match.groups())
    if not 1 <= month <= 12:
        return None
    return datetime(year, month, 1, tzinfo=timezone.utc)


def _next_month(moment: datetime) -> datetime:
    days_in_month = calendar.monthrange(moment.year, moment.month)[1]
    return moment.replace(day=1) + timedelta(days=days_in_month)


def coerce_filter_value(value: Any, operator: FilterOperator) -> Any:
    """필터 값을 조회용 타입으로 변환합니다.

    - 24자리 16진수 문자열 → ObjectRef
    - 'YYYY-MM-DD' → UTC 자정 datetime (day / month 연산자는 DateRange)
    - 그 외 → 그대로
    """
    if ObjectRef.is_valid(value):
        return ObjectRef(value)

    if operator in (FilterOperator.DAY, FilterOperator.MONTH):
        moment = _parse_calendar_date(value)
        if operator is FilterOperator.DAY:
            if moment is None:
                raise InvalidFilterFormat(f"Invalid date for day filter: {value}")
            return DateRange(moment, moment + timedelta(days=1))
        moment = moment or _parse_calendar_month(value)
        if moment is None:
            raise InvalidFilterFormat(f"Invalid date for month filter: {value}")
        month_start = moment.replace(day=1)
        return DateRange(month_start, _next_month(month_start))

    moment = _parse_calendar_date(value)
    if moment is not None:
        return moment

    return value


def _parse_key(raw_key: str) -> Tuple[str, FilterOperator]:
    field, separator, operator_name = raw_key.partition(QueryConstants.OPERATOR_SEPARATOR)
    if not field:
        raise InvalidFilterFormat(f"Invalid filter key: {raw_key}")
    if not separator:
        return field, FilterOperator.EQ
    try:
        return field, FilterOperator(operator_name)
    except ValueError:
        raise InvalidFilterFormat(f"Unknown filter operator: {operator_name}")


def _is_scalar(value: Any) -> bool:
    return not isinstance(value, (dict, list))


def build_condition(raw_key: str, value: Any) -> Condition:
    """`field` 또는 `field__operator` 키와 값으로 Condition 을 만듭니다.

    in 을 제외한 연산자는 스칼라 값만 받습니다. like 값은 대소문자를 구분하지 않는
    정규식으로 해석되므로 여기서 문법을 확인합니다.
    """
    field, operator = _parse_key(raw_key)
    if operator is FilterOperator.IN:
        values = value if isinstance(value, list) else [value]
        if not all(_is_scalar(item) for item in values):
            raise InvalidFilterFormat(f"Filter values for {raw_key} must be scalars")
        return Condition(field, operator, tuple(coerce_filter_value(item, FilterOperator.EQ) for item in values))
    if not _is_scalar(value):
        raise InvalidFilterFormat(f"Filter value for {raw_key} must be a scalar")
    if operator is FilterOperator.LIKE:
        pattern = str(value)
        try:
            re.compile(pattern)
        except re.error:
            raise InvalidFilterFormat(f"Invalid pattern for {raw_key}: {pattern}")
        return Condition(field, operator, pattern)
    return Condition(field, operator, coerce_filter_value(value, operator))


def _build_group(group: Union[Mapping[str, Any], List[Any]]) -> Tuple[Condition, ...]:
    # 배열 형식은 같은 논리 연산자 아래에 여러 조건 묶음을 나열한 것으로 본다
    items = group if isinstance(group, list) else [group]
    conditions: List[Condition] = []
    for item in items:
        if not isinstance(item, dict):
            raise InvalidFilterFormat("Filter groups must be objects or arrays of objects")
        for raw_key, value in item.items():
            conditions.append(build_condition(raw_key, value))
    return tuple(conditions)


def _load_quoted_json(raw: str) -> Any:
    return json.loads(raw.replace("'", '"'))


def decode_filter(
    raw: Optional[str],
    allowed_fields: Optional[Iterable[str]] = None,
    log: Optional[logging.Logger] = None,
) -> FilterPredicate:
    """필터 문자열을 FilterPredicate 로 변환합니다.

    Args:
        raw: 필터 문자열 (없으면 빈 필터)
        allowed_fields: 필터링 허용 필드 목록. 주어지면 조건 생성 후 검사한다.
        log: 진단 로그를 남길 로거 (기본: 모듈 로거)

    Raises:
        InvalidFilterFormat: 문자열을 해석할 수 없는 경우
        FieldNotFilterable: 허용되지 않은 필드를 참조한 경우
    """
    log = log or logger
    if not raw:
        return FilterPredicate()

    try:
        decoded = _load_quoted_json(raw)
    except ValueError:
        log.debug("필터 문자열 파싱 실패", extra={"details": {"filter": raw}})
        raise InvalidFilterFormat()

    if not isinstance(decoded, dict):
        raise InvalidFilterFormat("Filter must be a JSON object")

    unknown_keys = [key for key in decoded if key not in (QueryConstants.AND_KEY, QueryConstants.OR_KEY)]
    if unknown_keys:
        raise InvalidFilterFormat(f"Unknown filter group: {', '.join(unknown_keys)}")

    predicate = FilterPredicate(
        all_of=_build_group(decoded.get(QueryConstants.AND_KEY) or {}),
        any_of=_build_group(decoded.get(QueryConstants.OR_KEY) or {}),
    )
    log.debug(
        "필터 디코딩 완료",
        extra={"details": {"and": len(predicate.all_of), "or": len(predicate.any_of)}},
    )

    if allowed_fields is not None:
        ensure_filterable(predicate, allowed_fields)
    return predicate


def ensure_filterable(predicate: FilterPredicate, allowed_fields: Iterable[str]) -> None:
    """허용 목록에 없는 필드가 있으면 FieldNotFilterable 을 발생시킵니다."""
    allowed = set(allowed_fields)
    rejected = [field for field in predicate.fields if field not in allowed]
    if rejected:
        raise FieldNotFilterable(rejected)


def _references_field(key: str, field: str) -> bool:
    return (
        key == field
        or key.startswith(field + QueryConstants.OPERATOR_SEPARATOR)
        or key.endswith("." + field)
        or ("." + field + QueryConstants.OPERATOR_SEPARATOR) in key
    )


def extract_filter_value(raw: Optional[str], field: str) -> Any:
    """필터 문자열에서 특정 필드를 참조하는 첫 번째 값을 꺼냅니다.

    `field`, `field__op`, `parent.field`, `parent.field__op` 형태의 키를
    중첩 객체/배열까지 탐색합니다. 없으면 None.
    """
    if not raw:
        return None
    try:
        decoded = _load_quoted_json(raw)
    except ValueError:
        raise InvalidFilterFormat()

    pending: List[Any] = [decoded]
    while pending:
        node = pending.pop(0)
        if isinstance(node, list):
            pending[:0] = node
        elif isinstance(node, dict):
            for key, value in node.items():
                if _references_field(key, field):
                    return value
            pending[:0] = list(node.values())
    return None


def decode_sort(raw: Optional[str]) -> Optional[Dict[str, int]]:
    """정렬 문자열을 {필드: 방향} 으로 변환합니다.

    '+field' → 1 (오름차순), '-field' 또는 부호 없음 → -1 (내림차순).
    '[...]' 로 시작하면 토큰 배열로 해석합니다. 빈 값이면 None.
    """
    if not raw:
        return None

    if raw.startswith("["):
        try:
            tokens = _load_quoted_json(raw)
        except ValueError:
            raise InvalidSortFormat()
        if not isinstance(tokens, list):
            raise InvalidSortFormat()
    else:
        tokens = [raw]

    sort: Dict[str, int] = {}
    for token in tokens:
        if not isinstance(token, str):
            raise InvalidSortFormat()
        direction = QueryConstants.ASCENDING if token.startswith("+") else QueryConstants.DESCENDING
        field = token[1:] if token[:1] in ("+", "-") else token
        if not field:
            raise InvalidSortFormat()
        sort[field] = direction
    return sort


def pagination_request(page: Union[str, int], length: Union[str, int]) -> PaginationRequest:
    """page / length 문자열로 skip / limit 를 계산합니다."""
    try:
        page_number = int(page)
        page_size = int(length)
    except (TypeError, ValueError):
        raise InvalidPaginationFormat()
    return PaginationRequest(skip=(page_number - 1) * page_size, limit=page_size)


def pagination_result(total_items: int, request: PaginationRequest) -> PaginationResult:
    """전체 건수와 요청 정보로 페이지네이션 결과를 계산합니다."""
    if request.limit:
        current_page = request.skip // request.limit + 1 or 1
        page_size = request.limit
    else:
        current_page = 1
        page_size = QueryConstants.DEFAULT_PAGE_SIZE
    return PaginationResult(
        total_items=total_items,
        total_pages=math.ceil(total_items / page_size),
        current_page=current_page,
        page_size=page_size,
    )
