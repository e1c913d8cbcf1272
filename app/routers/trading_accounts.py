"""
거래 계좌 API 라우터

주요 기능:
- 거래 계좌 목록 조회 (필터 / 정렬 / 페이지네이션)
- 거래 계좌 단건 조회, 생성, 수정, 소프트 삭제
"""
from typing import Optional

from fastapi import APIRouter, Query

from app.core.config import settings
from app.core.dependencies import TradingAccountRepositoryDep
from app.core.exceptions import DataNotFoundException
from app.schemas.query import ListParams
from app.schemas.trading_account import TradingAccountCreate, TradingAccountUpdate
from app.utils.helpers import create_standardized_api_response

router = APIRouter()


def _not_found(account_id: str) -> DataNotFoundException:
    return DataNotFoundException(f"Trading account not found: {account_id}")


@router.get(
    "",
    summary="거래 계좌 목록 조회",
    description="필터/정렬/페이지네이션 문자열로 거래 계좌 목록을 조회합니다."
)
def list_trading_accounts(
    repository: TradingAccountRepositoryDep,
    filter: Optional[str] = Query(None, description="필터 문자열 (예: {'and': {'holder_type': 'USER'}})"),
    sort: Optional[str] = Query(None, description="정렬 문자열 (예: -created_at, ['+account_name','-leverage'])"),
    page: str = Query(settings.query.DEFAULT_PAGE, description="페이지 번호"),
    length: str = Query(settings.query.DEFAULT_PAGE_LENGTH, description="페이지 크기"),
    aggregate: bool = Query(False, description="집계 경로 사용 여부"),
):
    result = repository.list(ListParams(
        filter=filter,
        sort=sort,
        page=page,
        length=length,
        use_aggregation=aggregate,
    ))
    return create_standardized_api_response(
        is_success=True,
        message="거래 계좌 목록 조회 성공",
        data=result.data,
        pagination=result.pagination,
    )


@router.get("/{account_id}", summary="거래 계좌 단건 조회")
def get_trading_account(account_id: str, repository: TradingAccountRepositoryDep):
    account = repository.find_by_id(account_id)
    if account is None:
        raise _not_found(account_id)
    return create_standardized_api_response(is_success=True, message="거래 계좌 조회 성공", data=account)


@router.post("", status_code=201, summary="거래 계좌 생성")
def create_trading_account(payload: TradingAccountCreate, repository: TradingAccountRepositoryDep):
    account = repository.create(payload.model_dump())
    return create_standardized_api_response(is_success=True, message="거래 계좌 생성 완료", data=account)


@router.patch("/{account_id}", summary="거래 계좌 수정")
def update_trading_account(
    account_id: str,
    payload: TradingAccountUpdate,
    repository: TradingAccountRepositoryDep,
):
    account = repository.update(account_id, payload.model_dump(exclude_unset=True))
    if account is None:
        raise _not_found(account_id)
    return create_standardized_api_response(is_success=True, message="거래 계좌 수정 완료", data=account)


@router.delete("/{account_id}", summary="거래 계좌 삭제 (소프트 삭제)")
def delete_trading_account(account_id: str, repository: TradingAccountRepositoryDep):
    account = repository.delete(account_id)
    if account is None:
        raise _not_found(account_id)
    return create_standardized_api_response(is_success=True, message="거래 계좌 삭제 완료", data=account)
