"""
미들웨어 및 로깅 유틸리티 테스트
"""
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import Mock

import redis
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.config import RedisConfig, settings
from app.core import db
from app.middleware import ErrorHandlingMiddleware, RateLimitMiddleware
from app.schemas.query import PaginationResult
from app.utils.helpers import convert_to_json_types, create_standardized_api_response, sanitize_payload
from app.utils.logging import LedgerLogger, StructuredFormatter, get_logger


def build_rate_limited_app(redis_client) -> FastAPI:
    app = FastAPI()

    @app.get("/ping")
    def ping():
        return {"ok": True}

    app.add_middleware(RateLimitMiddleware, redis_client=redis_client, max_requests=2, time_window=60)
    app.add_middleware(ErrorHandlingMiddleware)
    return app


class TestRateLimitMiddleware:
    """요청 제한 미들웨어 테스트 클래스"""

    def setup_method(self):
        self.redis_client = Mock()
        self.pipeline = self.redis_client.pipeline.return_value
        self.client = TestClient(build_rate_limited_app(self.redis_client))

    def test_request_within_limit(self):
        self.pipeline.execute.return_value = [1, True]

        response = self.client.get("/ping")

        assert response.status_code == 200
        key = self.pipeline.incr.call_args[0][0]
        assert key.startswith("rate_limit:testclient:")
        self.pipeline.expire.assert_called_once_with(key, 60)

    def test_request_over_limit(self):
        self.pipeline.execute.return_value = [3, True]

        response = self.client.get("/ping")

        assert response.status_code == 429
        error = response.json()["error"]
        assert error["code"] == "RATE_LIMIT_EXCEEDED"
        assert error["details"] == {"limit": 2, "window_seconds": 60}

    def test_forwarded_ip_is_used_as_key(self):
        self.pipeline.execute.return_value = [1, True]

        self.client.get("/ping", headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})

        assert self.pipeline.incr.call_args[0][0].startswith("rate_limit:203.0.113.7:")

    def test_redis_failure_lets_request_through(self):
        self.pipeline.execute.side_effect = redis.ConnectionError("redis is down")

        response = self.client.get("/ping")

        assert response.status_code == 200
        assert response.json() == {"ok": True}


class TestSanitizePayload:
    """로그 마스킹 테스트 클래스"""

    def test_nested_values_are_redacted(self):
        payload = {
            "login_id": "trader",
            "Password": "p",
            "credentials": [{"API_KEY": "k", "label": "main"}],
            "session": {"refreshToken": {"value": "r"}},
        }

        assert sanitize_payload(payload) == {
            "login_id": "trader",
            "Password": "[REDACTED]",
            "credentials": [{"API_KEY": "[REDACTED]", "label": "main"}],
            "session": {"refreshToken": "[REDACTED]"},
        }

    def test_input_is_not_modified(self):
        payload = {"secret": "s"}
        sanitize_payload(payload)
        assert payload == {"secret": "s"}

    def test_scalars_pass_through(self):
        assert sanitize_payload("password") == "password"
        assert sanitize_payload(None) is None


class TestResponseHelpers:
    """응답 변환 유틸리티 테스트 클래스"""

    def test_convert_to_json_types(self):
        converted = convert_to_json_types({
            "at": datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc),
            "amount": Decimal("10.50"),
            "items": (1, 2),
        })

        assert converted == {"at": "2024-03-15T09:30:00+00:00", "amount": 10.5, "items": [1, 2]}

    def test_standardized_response_with_pagination(self):
        pagination = PaginationResult(total_items=1, total_pages=1, current_page=1, page_size=10)

        response = create_standardized_api_response(
            is_success=True, message="ok", data=[{"id": "a"}], pagination=pagination
        )

        assert response["success"] is True
        assert response["data"] == [{"id": "a"}]
        assert response["pagination"] == {"totalItems": 1, "totalPages": 1, "currentPage": 1, "pageSize": 10}
        assert "error_code" not in response


class TestStructuredLogging:
    """구조화 로깅 테스트 클래스"""

    def test_extra_fields_are_rendered_as_json(self):
        record = logging.LogRecord(
            name="app.test", level=logging.ERROR, pathname=__file__, lineno=1,
            msg="요청 처리 실패", args=(), exc_info=None,
        )
        record.status_code = 409
        record.error_code = "DUPLICATE_KEY"
        record.body = {"password": "[REDACTED]"}
        record.occurred_at = datetime(2024, 1, 1, tzinfo=timezone.utc)

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["level"] == "ERROR"
        assert entry["message"] == "요청 처리 실패"
        assert entry["status_code"] == 409
        assert entry["error_code"] == "DUPLICATE_KEY"
        assert entry["body"] == {"password": "[REDACTED]"}
        assert entry["occurred_at"].startswith("2024-01-01")
        assert "ip" not in entry

    def test_application_loggers_are_ledger_loggers(self):
        assert isinstance(get_logger("app.repository.base_repository"), LedgerLogger)

    def test_log_request_error_passes_context(self, caplog):
        logger = get_logger("app.test.request_error")

        with caplog.at_level(logging.ERROR, logger="app.test.request_error"):
            logger.log_request_error({
                "method": "POST", "path": "/api/v1/transactions", "status_code": 400,
                "error_type": "ValidationError", "error_message": ["amount must be at least 0"],
            })

        record = caplog.records[-1]
        assert record.status_code == 400
        assert record.error_type == "ValidationError"
        assert "POST /api/v1/transactions - 400 ValidationError" in record.getMessage()


class TestRedisConfig:
    """Redis 연결 설정 테스트 클래스"""

    def test_redis_url_without_password(self):
        config = RedisConfig(REDIS_HOST="cache", REDIS_PORT=6380, REDIS_DB=2, REDIS_PASSWORD="")
        assert config.REDIS_URL == "redis://cache:6380/2"

    def test_redis_url_with_password(self):
        config = RedisConfig(REDIS_HOST="cache", REDIS_PORT=6379, REDIS_DB=0, REDIS_PASSWORD="pw")
        assert config.REDIS_URL == "redis://:pw@cache:6379/0"

    def test_client_is_built_from_url(self):
        pool_kwargs = db.redis_client.connection_pool.connection_kwargs
        assert pool_kwargs["host"] == settings.redis.REDIS_HOST
        assert pool_kwargs["port"] == settings.redis.REDIS_PORT
        assert pool_kwargs["db"] == settings.redis.REDIS_DB
