"""
목록 조회(필터/정렬/페이지네이션) 관련 스키마

- 페이지네이션 요청 / 결과
- 리포지토리 list() 파라미터와 실행 옵션
"""
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

# 집계 경로에서 기본 SELECT 앞에 적용되는 단계 (예: 조인으로 연관 컬럼 추가)
PipelineStage = Callable[[Select], Select]

ReadPreference = Literal["primary", "primaryPreferred", "secondary", "secondaryPreferred", "nearest"]
ReadConcernLevel = Literal["local", "available", "majority", "linearizable", "snapshot"]


class PaginationRequest(BaseModel):
    skip: int = Field(..., description="건너뛸 행 수")
    limit: int = Field(..., description="가져올 행 수")


class PaginationResult(BaseModel):
    total_items: int = Field(..., alias="totalItems", description="전체 건수")
    total_pages: int = Field(..., alias="totalPages", description="전체 페이지 수")
    current_page: int = Field(..., alias="currentPage", description="현재 페이지")
    page_size: int = Field(..., alias="pageSize", description="페이지 크기")

    class Config:
        populate_by_name = True


class ExecutionOptions(BaseModel):
    """조회 실행 옵션

    모든 항목은 선택 사항이며, 지정된 항목만 적용된다.
    """
    session: Optional[Session] = Field(
        default=None, description="호출자 작업 단위 세션. 지정 시 두 쿼리를 이 세션에서 순차 실행"
    )
    allow_disk_use: bool = Field(
        default=False, description="서버 측 커서(stream_results) 사용 여부"
    )
    max_time_ms: Optional[int] = Field(
        default=None, ge=1, description="쿼리 시간 제한 (PostgreSQL statement_timeout)"
    )
    read_preference: Optional[ReadPreference] = Field(
        default=None, description="secondary 계열이면 복제본 세션 팩토리 사용 (설정된 경우)"
    )
    read_concern: Optional[ReadConcernLevel] = Field(
        default=None, description="직접 연 세션의 트랜잭션 격리 수준으로 매핑"
    )
    hint: Optional[str] = Field(default=None, description="사용할 인덱스 이름 (SQLite / MySQL)")
    collation: Optional[str] = Field(default=None, description="문자열 정렬 키에 적용할 collation 이름")

    class Config:
        arbitrary_types_allowed = True


class ListParams(BaseModel):
    """BaseRepository.list() 파라미터"""
    filter: Optional[str] = Field(default=None, description="필터 문자열")
    sort: Optional[str] = Field(default=None, description="정렬 문자열 (None 이면 리포지토리 기본 정렬)")
    page: str = Field(default="1", description="페이지 번호")
    length: str = Field(default="10", description="페이지 크기")
    filterable_fields: Optional[Sequence[str]] = Field(
        default=None, description="필터링 허용 필드 (None 이면 리포지토리 기본 목록)"
    )
    use_aggregation: bool = Field(default=False, description="집계(단일 구문 fan-out) 경로 사용 여부")
    aggregation_pipeline: List[PipelineStage] = Field(
        default_factory=list, description="기본 SELECT 에 먼저 적용할 단계들"
    )
    project_stage: Optional[PipelineStage] = Field(
        default=None, description="페이지 데이터에 적용할 투영 단계"
    )
    exclude_fields: Sequence[str] = Field(default=(), description="추가로 제외할 필드")
    options: ExecutionOptions = Field(default_factory=ExecutionOptions)

    class Config:
        arbitrary_types_allowed = True


class ListResult(BaseModel):
    data: List[Dict[str, Any]]
    pagination: Optional[PaginationResult] = None
