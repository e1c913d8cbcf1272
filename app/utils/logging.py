"""
구조화된 로깅 시스템을 제공합니다.
"""
import logging
import sys
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import json

from app.core.constants import LOG_LEVELS


class StructuredFormatter(logging.Formatter):
    """구조화된 로그 형식을 제공하는 포매터"""

    # extra 로 전달되면 JSON 로그에 포함되는 필드
    extra_fields = (
        'request_id', 'method', 'path', 'endpoint', 'status_code', 'execution_time',
        'error', 'error_type', 'error_message', 'error_code', 'user_agent', 'ip',
        'body', 'query', 'details', 'occurred_at', 'entity', 'entity_id',
    )

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # 추가 필드가 있으면 포함
        for field in self.extra_fields:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        # 예외 정보 포함
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class LedgerLogger(logging.Logger):
    """거래 원장 서비스 전용 로거"""

    def log_entity_change(self, entity: str, action: str, entity_id: str, **kwargs):
        """엔티티 변경 로그"""
        self.info(
            f"{entity} {action}: {entity_id}",
            extra={"entity": entity, "entity_id": entity_id, **kwargs}
        )

    def log_request_error(self, context: Dict[str, Any], exc_info: Optional[BaseException] = None):
        """요청 처리 실패 로그

        context 는 method, path, status_code, error_type, error_message 등
        StructuredFormatter.extra_fields 에 해당하는 키를 담는다.
        """
        self.error(
            f"요청 처리 실패: {context.get('method')} {context.get('path')} - "
            f"{context.get('status_code')} {context.get('error_type')}: {context.get('error_message')}",
            extra=context,
            exc_info=exc_info,
        )


# 전역 로거 클래스
logging.setLoggerClass(LedgerLogger)


def get_logger(name: str) -> LedgerLogger:
    """로거 인스턴스를 가져옵니다."""
    return logging.getLogger(name)


def setup_logging(
    level: str = LOG_LEVELS["INFO"],
    log_file: Optional[str] = None,
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
) -> None:
    """로깅 시스템을 설정합니다.

    Args:
        level: 루트 로거 레벨
        log_file: JSON 로그 파일 경로. 비어 있으면 파일 핸들러를 추가하지 않는다.
        log_format: 콘솔 로그 포맷
    """
    # 루트 로거 설정
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    # 핸들러 중복 추가 방지
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    # 콘솔 핸들러
    console_handler = logging.StreamHandler(sys.stdout)
    console_formatter = logging.Formatter(
        log_format,
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    # 파일 핸들러 (JSON 형식)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    # 외부 라이브러리 로거 레벨 조정
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("fastapi").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    get_logger("app.main").info("로깅 시스템 초기화 완료")
