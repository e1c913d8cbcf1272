"""
입출금 거래 내역 API 라우터

주요 기능:
- 거래 내역 목록 조회 (필터 / 정렬 / 페이지네이션)
- 계좌 정보를 포함한 거래 내역 목록 조회 (집계 경로)
- 거래 내역 단건 조회, 생성, 수정, 소프트 삭제
"""
from typing import Optional

from fastapi import APIRouter, Query

from app.core.config import settings
from app.core.dependencies import TradingAccountRepositoryDep, TransactionRepositoryDep
from app.core.exceptions import DataNotFoundException
from app.schemas.query import ListParams
from app.schemas.transaction import TransactionCreate, TransactionUpdate
from app.utils.helpers import create_standardized_api_response

router = APIRouter()


def _not_found(transaction_id: str) -> DataNotFoundException:
    return DataNotFoundException(f"Transaction not found: {transaction_id}")


@router.get(
    "",
    summary="거래 내역 목록 조회",
    description="필터/정렬/페이지네이션 문자열로 거래 내역 목록을 조회합니다."
)
def list_transactions(
    repository: TransactionRepositoryDep,
    filter: Optional[str] = Query(None, description="필터 문자열 (예: {'and': {'created_at__month': '2024-03'}})"),
    sort: Optional[str] = Query(None, description="정렬 문자열"),
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
        message="거래 내역 목록 조회 성공",
        data=result.data,
        pagination=result.pagination,
    )


@router.get(
    "/with-account",
    summary="계좌 정보 포함 거래 내역 목록 조회",
    description="소유 계좌의 번호와 이름을 포함한 거래 내역 목록을 조회합니다."
)
def list_transactions_with_account(
    repository: TransactionRepositoryDep,
    filter: Optional[str] = Query(None, description="필터 문자열 (account_number, account_name 사용 가능)"),
    sort: Optional[str] = Query(None, description="정렬 문자열"),
    page: str = Query(settings.query.DEFAULT_PAGE, description="페이지 번호"),
    length: str = Query(settings.query.DEFAULT_PAGE_LENGTH, description="페이지 크기"),
):
    result = repository.list_with_account(ListParams(filter=filter, sort=sort, page=page, length=length))
    return create_standardized_api_response(
        is_success=True,
        message="거래 내역 목록 조회 성공",
        data=result.data,
        pagination=result.pagination,
    )


@router.get("/{transaction_id}", summary="거래 내역 단건 조회")
def get_transaction(transaction_id: str, repository: TransactionRepositoryDep):
    transaction = repository.find_by_id(transaction_id)
    if transaction is None:
        raise _not_found(transaction_id)
    return create_standardized_api_response(is_success=True, message="거래 내역 조회 성공", data=transaction)


@router.post("", status_code=201, summary="거래 내역 생성")
def create_transaction(
    payload: TransactionCreate,
    repository: TransactionRepositoryDep,
    account_repository: TradingAccountRepositoryDep,
):
    account = account_repository.find_by_id(payload.account_id)
    if account is None:
        raise DataNotFoundException(f"Trading account not found: {payload.account_id}")
    transaction = repository.create({**payload.model_dump(), "account_id": account["id"]})
    return create_standardized_api_response(is_success=True, message="거래 내역 생성 완료", data=transaction)


@router.patch("/{transaction_id}", summary="거래 내역 수정")
def update_transaction(
    transaction_id: str,
    payload: TransactionUpdate,
    repository: TransactionRepositoryDep,
):
    transaction = repository.update(transaction_id, payload.model_dump(exclude_unset=True))
    if transaction is None:
        raise _not_found(transaction_id)
    return create_standardized_api_response(is_success=True, message="거래 내역 수정 완료", data=transaction)


@router.delete("/{transaction_id}", summary="거래 내역 삭제 (소프트 삭제)")
def delete_transaction(transaction_id: str, repository: TransactionRepositoryDep):
    transaction = repository.delete(transaction_id)
    if transaction is None:
        raise _not_found(transaction_id)
    return create_standardized_api_response(is_success=True, message="거래 내역 삭제 완료", data=transaction)
