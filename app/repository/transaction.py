"""
입출금 거래 내역 리포지토리
"""
from typing import Optional

from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import Select

from app.models.tables import TradingAccount, Transaction
from app.repository.base_repository import BaseRepository
from app.schemas.query import ListParams, ListResult


def join_owning_account(stmt: Select) -> Select:
    """거래 내역 SELECT 에 소유 계좌의 번호와 이름을 붙이는 집계 단계"""
    return stmt.outerjoin(TradingAccount, TradingAccount.id == Transaction.account_id).add_columns(
        TradingAccount.account_number.label("account_number"),
        TradingAccount.account_name.label("account_name"),
    )


class TransactionRepository(BaseRepository[Transaction]):
    """입출금 거래 내역 데이터 접근 클래스"""

    filterable_fields = (
        "id",
        "transaction_type",
        "amount",
        "description",
        "account_id",
        "deal_id",
        "created_at",
        "updated_at",
    )

    # list_with_account 에서 추가로 필터링 가능한 계좌 컬럼
    account_filterable_fields = ("account_number", "account_name")

    def __init__(self, session_factory: sessionmaker, replica_session_factory: Optional[sessionmaker] = None):
        super().__init__(Transaction, session_factory, replica_session_factory)

    def list_with_account(self, params: ListParams) -> ListResult:
        """
        소유 계좌의 번호/이름을 포함한 거래 내역 목록 (집계 경로).
        호출자가 넘긴 단계는 계좌 조인 뒤에 적용된다.
        """
        filterable_fields = params.filterable_fields
        if filterable_fields is None:
            filterable_fields = (*self.filterable_fields, *self.account_filterable_fields)
        return self.list(params.model_copy(update={
            "use_aggregation": True,
            "aggregation_pipeline": [join_owning_account, *params.aggregation_pipeline],
            "filterable_fields": filterable_fields,
        }))
