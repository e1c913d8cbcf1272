"""
거래 계좌 리포지토리
"""
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session, sessionmaker

from app.core.constants import RepositoryConstants
from app.models.tables import TradingAccount
from app.repository.base_repository import BaseRepository


class TradingAccountRepository(BaseRepository[TradingAccount]):
    """
    거래 계좌 데이터 접근 클래스.
    비밀번호는 목록/단건 조회 결과에서 제외되며 `find_with_credentials` 로만 조회된다.
    """

    filterable_fields = (
        "id",
        "account_number",
        "account_name",
        "holder_type",
        "holder_id",
        "group",
        "leverage",
        "login_id",
        "created_at",
        "updated_at",
    )
    hidden_fields = RepositoryConstants.CREDENTIAL_FIELDS

    def __init__(self, session_factory: sessionmaker, replica_session_factory: Optional[sessionmaker] = None):
        super().__init__(TradingAccount, session_factory, replica_session_factory)

    def find_by_account_number(
        self, account_number: str, session: Optional[Session] = None
    ) -> Optional[Dict[str, Any]]:
        """계좌 번호로 단건 조회합니다."""
        return self.find_one({"account_number": account_number}, session=session)
