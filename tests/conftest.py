"""
테스트 설정 및 공통 유틸리티
"""
import os
import tempfile

# 애플리케이션 설정은 import 시점에 읽히므로 먼저 지정한다
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(tempfile.gettempdir(), "trading_ledger_test.db")
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_FILE"] = ""
os.environ["RATE_LIMIT_ENABLED"] = "false"

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from app.core.db import build_session_factory, get_replica_session_factory, get_session_factory
from app.main import app
from app.models.tables import Base
from app.repository.trading_account import TradingAccountRepository
from app.repository.transaction import TransactionRepository


def make_account_data(number: int, **overrides):
    """테스트용 거래 계좌 데이터"""
    data = {
        "account_number": f"ACC-{number:03d}",
        "account_name": f"Account {number}",
        "holder_type": "USER",
        "holder_id": f"holder-{number}",
        "group": "standard",
        "leverage": 10,
        "login_id": f"login-{number}",
        "password": f"secret-{number}",
    }
    data.update(overrides)
    return data


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def session_factory(tmp_path):
    """테스트마다 새 SQLite 파일 데이터베이스"""
    factory = build_session_factory(f"sqlite:///{tmp_path / 'ledger.db'}")
    engine = factory.kw["bind"]
    Base.metadata.create_all(bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def account_repository(session_factory):
    return TradingAccountRepository(session_factory)


@pytest.fixture
def transaction_repository(session_factory):
    return TransactionRepository(session_factory)


@pytest.fixture
def client(session_factory):
    """테스트 클라이언트"""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_replica_session_factory] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()
