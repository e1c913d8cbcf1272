"""
데이터베이스 테이블 모델을 정의하는 모듈

SQLAlchemy의 선언적 기반(Declarative Base)을 사용하여 모든 데이터베이스 모델을 관리한다.
- 식별자는 24자리 16진수 객체 참조 문자열
- 모든 테이블은 생성/수정 시각, 소프트 삭제 플래그, 버전 컬럼을 가진다
- 필드 검증 실패는 StorageError(VALIDATION) 로 올린다
"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import declarative_base, validates

from app.core.storage_errors import FieldError, StorageError
from app.utils.object_ref import ObjectRef

Base = declarative_base()


def new_object_id() -> str:
    return str(ObjectRef.generate())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _require_enum(key: str, value, allowed: tuple):
    if value not in allowed:
        raise StorageError.validation([
            FieldError(path=key, kind="enum", properties={"enum_values": list(allowed)})
        ])
    return value


class LedgerRecordMixin:
    """공통 컬럼"""

    id = Column(String(24), primary_key=True, default=new_object_id, comment="객체 참조 ID")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, comment="생성 시각")
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now, comment="수정 시각"
    )
    is_deleted = Column(Boolean, nullable=False, default=False, comment="소프트 삭제 여부")
    version = Column(Integer, nullable=False, comment="낙관적 동시성 버전")


class TradingAccount(LedgerRecordMixin, Base):
    """거래 계좌 테이블

    사용자 또는 사업자 명의의 거래 계좌 정보를 저장한다.
    `password` 는 인증 정보 필드로, 기본 조회 결과에서 제외된다.
    """
    __tablename__ = "trading_accounts"

    HOLDER_TYPES = ("USER", "BUSINESS")
    ACCOUNT_NAME_MAX_LENGTH = 100

    account_number = Column(String(64), nullable=False, unique=True, comment="계좌 번호")
    account_name = Column(String(ACCOUNT_NAME_MAX_LENGTH), nullable=False, comment="계좌명")
    holder_type = Column(String(16), nullable=False, comment="명의 유형 (USER, BUSINESS)")
    holder_id = Column(String(64), nullable=False, comment="명의자 ID")
    group = Column(String(64), nullable=False, comment="거래 그룹")
    leverage = Column(Integer, nullable=False, comment="레버리지")
    login_id = Column(String(64), nullable=False, unique=True, comment="거래 플랫폼 로그인 ID")
    password = Column(String(255), nullable=False, comment="거래 플랫폼 비밀번호")

    __mapper_args__ = {"version_id_col": LedgerRecordMixin.version}

    @validates("holder_type")
    def validate_holder_type(self, key, value):
        return _require_enum(key, value, self.HOLDER_TYPES)

    @validates("account_name")
    def validate_account_name(self, key, value):
        if value is not None and len(value) > self.ACCOUNT_NAME_MAX_LENGTH:
            raise StorageError.validation([
                FieldError(path=key, kind="maxlength", properties={"maxlength": self.ACCOUNT_NAME_MAX_LENGTH})
            ])
        return value


class Transaction(LedgerRecordMixin, Base):
    """입출금 거래 내역 테이블

    데이터베이스 트랜잭션이 아니라 계좌 원장의 입금/출금 기록이다.
    """
    __tablename__ = "transactions"

    TRANSACTION_TYPES = ("DEPOSIT", "WITHDRAW")

    transaction_type = Column(String(16), nullable=False, comment="거래 유형 (DEPOSIT, WITHDRAW)")
    amount = Column(Float, nullable=False, comment="금액")
    description = Column(String(255), nullable=True, comment="설명")
    account_id = Column(String(24), ForeignKey("trading_accounts.id"), nullable=False, comment="계좌 ID")
    deal_id = Column(String(64), nullable=True, comment="거래 플랫폼 딜 ID")

    __mapper_args__ = {"version_id_col": LedgerRecordMixin.version}

    @validates("transaction_type")
    def validate_transaction_type(self, key, value):
        return _require_enum(key, value, self.TRANSACTION_TYPES)

    @validates("amount")
    def validate_amount(self, key, value):
        if value is not None and value < 0:
            raise StorageError.validation([FieldError(path=key, kind="min", properties={"min": 0})])
        return value
