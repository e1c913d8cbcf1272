"""
애플리케이션 설정 관리

환경 변수(.env 포함)에서 설정을 읽어 그룹별 BaseSettings 로 구성한다.
"""
from functools import lru_cache
from typing import Optional
from pydantic import Field, validator
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# .env 파일에서 환경 변수를 로드합니다.
load_dotenv()


class DatabaseConfig(BaseSettings):
    """데이터베이스 설정"""

    # PostgreSQL
    POSTGRES_USER: str = Field(default="ledger", description="PostgreSQL 사용자명")
    POSTGRES_PASSWORD: str = Field(default="ledger", description="PostgreSQL 비밀번호")
    POSTGRES_HOST: str = Field(default="localhost", description="PostgreSQL 호스트")
    POSTGRES_PORT: str = Field(default="5432", description="PostgreSQL 포트")
    POSTGRES_DB: str = Field(default="trading_ledger", description="PostgreSQL 데이터베이스명")

    # 전체 URL 을 직접 지정하면 POSTGRES_* 값보다 우선한다 (테스트에서는 SQLite 사용)
    DATABASE_URL_OVERRIDE: Optional[str] = Field(
        default=None, alias="DATABASE_URL", description="데이터베이스 연결 URL"
    )
    DATABASE_REPLICA_URL: Optional[str] = Field(
        default=None, description="읽기 전용 복제본 URL (read preference 라우팅)"
    )
    AUTO_CREATE_TABLES: bool = Field(default=False, description="시작 시 테이블 자동 생성 여부")

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True

    @property
    def DATABASE_URL(self) -> str:
        """데이터베이스 연결 URL"""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


class RedisConfig(BaseSettings):
    """Redis 설정"""

    REDIS_HOST: str = Field(default="localhost", description="Redis 호스트")
    REDIS_PORT: int = Field(default=6379, description="Redis 포트")
    REDIS_DB: int = Field(default=0, description="Redis 데이터베이스 번호")
    REDIS_PASSWORD: str = Field(default="", description="Redis 비밀번호")

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def REDIS_URL(self) -> str:
        """Redis 연결 URL"""
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class RateLimitConfig(BaseSettings):
    """요청 제한 설정"""

    RATE_LIMIT_ENABLED: bool = Field(default=False, description="요청 제한 활성화 여부")
    RATE_LIMIT_MAX_REQUESTS: int = Field(default=120, description="윈도우당 최대 요청 수", ge=1)
    RATE_LIMIT_WINDOW_SECONDS: int = Field(default=60, description="윈도우 크기 (초)", ge=1)

    class Config:
        env_file = ".env"
        extra = "ignore"


class QueryConfig(BaseSettings):
    """목록 조회 기본값"""

    DEFAULT_SORT: str = Field(default="-created_at", description="정렬 미지정 시 기본 정렬")
    DEFAULT_PAGE: str = Field(default="1", description="기본 페이지 번호")
    DEFAULT_PAGE_LENGTH: str = Field(default="10", description="기본 페이지 크기")

    class Config:
        env_file = ".env"
        extra = "ignore"


class LoggingConfig(BaseSettings):
    """로깅 설정"""

    LOG_LEVEL: str = Field(default="INFO", description="로그 레벨")
    LOG_FORMAT: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="로그 포맷"
    )
    LOG_FILE: Optional[str] = Field(default="trading_ledger.log", description="JSON 로그 파일명 (빈 값이면 비활성)")

    class Config:
        env_file = ".env"
        extra = "ignore"

    @validator("LOG_LEVEL")
    def validate_log_level(cls, v):
        """로그 레벨 유효성 검사"""
        if v.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("LOG_LEVEL 은 DEBUG/INFO/WARNING/ERROR/CRITICAL 중 하나여야 합니다")
        return v.upper()


class Settings(BaseSettings):
    """통합 설정 클래스"""

    # 환경 설정
    ENVIRONMENT: str = Field(default="development", description="실행 환경")

    # 하위 설정들
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    class Config:
        """Pydantic 설정"""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    @property
    def is_production(self) -> bool:
        """프로덕션 환경 여부"""
        return self.ENVIRONMENT.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """설정 인스턴스 반환 (싱글톤)"""
    return Settings()


settings = get_settings()
