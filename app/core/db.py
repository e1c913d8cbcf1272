from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
import redis

from app.core.config import settings
from app.core.storage_errors import translate_storage_error


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


def build_session_factory(url: str) -> sessionmaker:
    """URL 로부터 엔진과 세션 팩토리를 생성합니다."""
    bind = create_engine(url, **_engine_kwargs(url))
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


# PostgreSQL 연결
SessionLocal = build_session_factory(settings.database.DATABASE_URL)
engine = SessionLocal.kw["bind"]

# 읽기 전용 복제본 (설정된 경우에만)
ReplicaSessionLocal: Optional[sessionmaker] = (
    build_session_factory(settings.database.DATABASE_REPLICA_URL)
    if settings.database.DATABASE_REPLICA_URL
    else None
)

# Redis 연결
redis_client = redis.Redis.from_url(settings.redis.REDIS_URL, decode_responses=True)


@event.listens_for(Engine, "before_cursor_execute")
def _apply_statement_timeout(conn, cursor, statement, parameters, context, executemany):
    """max_time_ms 실행 옵션을 PostgreSQL statement_timeout 으로 적용합니다."""
    if context is None or conn.dialect.name != "postgresql":
        return
    max_time_ms = context.execution_options.get("max_time_ms")
    if max_time_ms:
        cursor.execute(f"SET LOCAL statement_timeout = {int(max_time_ms)}")


@contextmanager
def translate_storage_errors() -> Iterator[None]:
    """블록 안에서 발생한 SQLAlchemy / Redis 예외를 StorageError 로 바꿔 올립니다."""
    try:
        yield
    except (SQLAlchemyError, redis.RedisError) as exc:
        raise translate_storage_error(exc) from exc


@contextmanager
def session_scope(
    session_factory: sessionmaker,
    session: Optional[Session] = None,
    commit: bool = False,
    isolation_level: Optional[str] = None,
) -> Iterator[Session]:
    """작업 단위(Session) 컨텍스트

    - `session`: 호출자가 전달한 세션. 이 경우 flush 만 수행하고 commit/close 하지 않는다.
    - `commit`: 직접 연 세션에서 블록 종료 시 commit 여부
    - `isolation_level`: 직접 연 세션의 트랜잭션 격리 수준
    """
    if session is not None:
        with translate_storage_errors():
            yield session
            if commit:
                session.flush()
        return

    db = session_factory()
    try:
        with translate_storage_errors():
            if isolation_level:
                db.connection(execution_options={"isolation_level": isolation_level})
            yield db
            if commit:
                db.commit()
    except BaseException:
        db.rollback()
        raise
    finally:
        db.close()


# DB 세션 팩토리를 얻기 위한 Dependency
def get_session_factory() -> sessionmaker:
    return SessionLocal


def get_replica_session_factory() -> Optional[sessionmaker]:
    return ReplicaSessionLocal


# Redis 클라이언트를 얻기 위한 Dependency
def get_redis():
    return redis_client
