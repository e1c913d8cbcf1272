"""
의존성 주입 정의
"""
from typing import Annotated, Optional

import redis
from fastapi import Depends
from sqlalchemy.orm import sessionmaker

from app.core.db import get_redis, get_replica_session_factory, get_session_factory
from app.repository.trading_account import TradingAccountRepository
from app.repository.transaction import TransactionRepository


# === 기본 의존성 ===
SessionFactory = Annotated[sessionmaker, Depends(get_session_factory)]
ReplicaSessionFactory = Annotated[Optional[sessionmaker], Depends(get_replica_session_factory)]
RedisClient = Annotated[redis.Redis, Depends(get_redis)]


# === Repository 의존성 ===
def get_trading_account_repository(
    session_factory: SessionFactory,
    replica_session_factory: ReplicaSessionFactory,
) -> TradingAccountRepository:
    """거래 계좌 Repository 인스턴스를 반환합니다."""
    return TradingAccountRepository(session_factory, replica_session_factory)


def get_transaction_repository(
    session_factory: SessionFactory,
    replica_session_factory: ReplicaSessionFactory,
) -> TransactionRepository:
    """거래 내역 Repository 인스턴스를 반환합니다."""
    return TransactionRepository(session_factory, replica_session_factory)


TradingAccountRepositoryDep = Annotated[TradingAccountRepository, Depends(get_trading_account_repository)]
TransactionRepositoryDep = Annotated[TransactionRepository, Depends(get_transaction_repository)]
