"""
공통 유틸리티 함수 모음

프로젝트 전반에서 사용되는 재사용 가능한 헬퍼 함수들을 제공한다.
- API 응답 생성
- JSON 직렬화 가능한 타입으로 변환
- 로그용 민감 정보 마스킹
"""
from typing import Any, Dict, Optional
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel

from app.core.constants import SecurityConstants


def convert_to_json_types(value: Any) -> Any:
    """응답 데이터를 JSON 직렬화 가능한 Python 기본 타입으로 변환

    Args:
        value: 변환할 값 (단일 값, 리스트, 딕셔너리, pydantic 모델 등)

    Returns:
        Python 기본 타입으로 변환된 값
    """
    if isinstance(value, BaseModel):
        return convert_to_json_types(value.model_dump(by_alias=True))
    elif isinstance(value, (datetime, date)):
        return value.isoformat()
    elif isinstance(value, Decimal):
        return float(value)
    elif isinstance(value, Enum):
        return value.value
    elif isinstance(value, dict):
        return {key: convert_to_json_types(val) for key, val in value.items()}
    elif isinstance(value, (list, tuple)):
        return [convert_to_json_types(item) for item in value]
    elif isinstance(value, str):
        # ObjectRef 등 str 하위 클래스는 일반 문자열로
        return str(value)
    else:
        return value


def create_standardized_api_response(
    is_success: bool = True,
    message: str = "",
    data: Optional[Any] = None,
    error_code: Optional[str] = None,
    pagination: Optional[Any] = None,
) -> Dict[str, Any]:
    """표준화된 API 응답 데이터 생성

    모든 API 엔드포인트에서 일관된 응답 형식을 제공한다.

    Args:
        is_success: 요청 성공 여부
        message: 응답 메시지
        data: 응답 데이터 (옵션)
        error_code: 에러 코드 (옵션)
        pagination: 목록 조회 페이지네이션 정보 (옵션)

    Returns:
        표준화된 API 응답 딕셔너리
    """
    response = {
        "success": is_success,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

    if data is not None:
        response["data"] = convert_to_json_types(data)

    if pagination is not None:
        response["pagination"] = convert_to_json_types(pagination)

    if error_code:
        response["error_code"] = error_code

    return response


def is_sensitive_key(key: Any) -> bool:
    """키 이름에 민감 정보 표식이 포함되어 있는지 확인 (대소문자 무시)"""
    lowered = str(key).lower()
    return any(marker in lowered for marker in SecurityConstants.SENSITIVE_FIELD_MARKERS)


def sanitize_payload(payload: Any) -> Any:
    """로그에 남기기 전에 민감한 값을 재귀적으로 마스킹

    민감 키의 값은 타입과 관계없이 `[REDACTED]` 로 바뀐다.
    원본은 변경하지 않는다.
    """
    if isinstance(payload, dict):
        return {
            key: SecurityConstants.REDACTED_PLACEHOLDER if is_sensitive_key(key) else sanitize_payload(value)
            for key, value in payload.items()
        }
    if isinstance(payload, list):
        return [sanitize_payload(item) for item in payload]
    return payload
