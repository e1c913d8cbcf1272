"""
FastAPI 애플리케이션 팩토리
"""
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.core.config import settings
from app.core.db import engine, get_session_factory, redis_client, translate_storage_errors
from app.middleware import (
    ErrorHandlingMiddleware,
    LoggingMiddleware,
    RateLimitMiddleware,
    RequestBodyCaptureMiddleware,
    register_exception_handlers,
)
from app.models.tables import Base
from app.routers import trading_accounts, transactions
from app.utils.helpers import create_standardized_api_response
from app.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """애플리케이션 생명주기 관리"""
    # === 시작 ===
    logger.info("애플리케이션 시작 프로세스 개시")

    if settings.database.AUTO_CREATE_TABLES:
        Base.metadata.create_all(bind=engine)
        logger.info("데이터베이스 테이블 생성 확인 완료")

    if settings.rate_limit.RATE_LIMIT_ENABLED:
        try:
            redis_client.ping()
            logger.info("Redis 연결 확인 완료")
        except redis.RedisError as e:
            # 요청 제한은 Redis 장애 시 통과시키므로 시작을 막지 않는다
            logger.warning(f"Redis 연결 실패, 요청 제한이 동작하지 않습니다: {e}")

    logger.info("애플리케이션 초기화 완료")

    yield

    # === 종료 ===
    logger.info("애플리케이션 종료 프로세스 시작")
    engine.dispose()
    logger.info("애플리케이션 종료 완료")


def setup_middleware(app: FastAPI):
    """미들웨어 설정 (나중에 추가한 미들웨어가 바깥쪽에서 실행된다)"""

    # CORS 미들웨어 (가장 먼저)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # 프로덕션에서는 구체적인 도메인 지정
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 요청 제한 미들웨어 (초과 시 RateLimitException 을 에러 핸들링 미들웨어가 처리)
    if settings.rate_limit.RATE_LIMIT_ENABLED:
        app.add_middleware(
            RateLimitMiddleware,
            redis_client=redis_client,
            max_requests=settings.rate_limit.RATE_LIMIT_MAX_REQUESTS,
            time_window=settings.rate_limit.RATE_LIMIT_WINDOW_SECONDS,
        )

    # 에러 핸들링 미들웨어
    app.add_middleware(ErrorHandlingMiddleware)

    # 로깅 미들웨어
    app.add_middleware(LoggingMiddleware, log_requests=True, log_responses=False)

    # 요청 본문 보관 (가장 마지막, 에러 로그용)
    app.add_middleware(RequestBodyCaptureMiddleware)

    logger.info("미들웨어 설정 완료")


def setup_routes(app: FastAPI):
    """라우터 설정"""

    # API 라우터 등록
    app.include_router(trading_accounts.router, prefix="/api/v1/trading-accounts", tags=["Trading Accounts"])
    app.include_router(transactions.router, prefix="/api/v1/transactions", tags=["Transactions"])

    # 헬스체크 엔드포인트
    @app.get("/health")
    def health_check():
        """데이터베이스 연결 상태 확인"""
        session_factory = app.dependency_overrides.get(get_session_factory, get_session_factory)()
        with translate_storage_errors():
            with session_factory() as db:
                db.execute(text("SELECT 1"))

        return create_standardized_api_response(
            is_success=True,
            data={"status": "healthy", "database": "connected", "environment": settings.ENVIRONMENT},
            message="모든 서비스가 정상적으로 작동 중입니다."
        )

    logger.info("라우터 설정 완료")


def create_application() -> FastAPI:
    """FastAPI 애플리케이션 생성"""

    # 로깅 설정
    setup_logging(settings.logging.LOG_LEVEL, settings.logging.LOG_FILE, settings.logging.LOG_FORMAT)
    logger.info("FastAPI 애플리케이션 생성 시작")

    # FastAPI 애플리케이션 생성
    app = FastAPI(
        title="Trading Ledger API",
        description="거래 계좌 및 입출금 내역 관리 API",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json"
    )

    # 미들웨어 설정
    setup_middleware(app)

    # 예외 처리기 등록
    register_exception_handlers(app)

    # 라우터 설정
    setup_routes(app)

    logger.info("FastAPI 애플리케이션 생성 완료")
    return app
