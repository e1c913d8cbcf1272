"""
에러 분류기 테스트
"""
import dataclasses
import errno
import json
import socket

import httpx
import jwt
import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from app.core.exceptions import DataNotFoundException, FieldNotFilterable, RateLimitException
from app.core.storage_errors import FieldError, StorageError, StorageErrorKind
from app.schemas.trading_account import TradingAccountCreate
from app.utils.error_classifier import ErrorClassifier, ErrorRecord, classify_exception, validation_sentence


class TestHttpAndTokenErrors:
    """HTTP / 토큰 오류 분류 테스트 클래스"""

    def setup_method(self):
        self.classifier = ErrorClassifier(debug=False)

    def test_ledger_exception(self):
        record = self.classifier.classify(DataNotFoundException("Trading account not found: x"))

        assert record.status == 404
        assert record.type == "DataNotFoundException"
        assert record.code == "NOT_FOUND"
        assert record.message == "Trading account not found: x"

    def test_field_not_filterable_keeps_details(self):
        record = self.classifier.classify(FieldNotFilterable(["password"]))

        assert record.status == 400
        assert record.code == "FIELD_NOT_FILTERABLE"
        assert record.details == {"fields": ["password"]}

    def test_http_exception(self):
        record = self.classifier.classify(HTTPException(status_code=405, detail="Method Not Allowed"))

        assert record.status == 405
        assert record.message == "Method Not Allowed"
        assert record.code == "HTTP_405"

    @pytest.mark.parametrize("exc, message, code", [
        (jwt.ExpiredSignatureError("expired"), "Token has expired", "TOKEN_EXPIRED"),
        (jwt.ImmatureSignatureError("nbf"), "Token not active yet", "TOKEN_NOT_ACTIVE"),
        (jwt.DecodeError("garbage"), "Invalid token", "INVALID_TOKEN"),
    ])
    def test_token_errors(self, exc, message, code):
        record = self.classifier.classify(exc)

        assert record.status == 401
        assert record.message == message
        assert record.code == code

    def test_real_expired_token(self):
        token = jwt.encode({"sub": "1", "exp": 1}, "ledger-test-signing-key-0123456789abcdef", algorithm="HS256")

        with pytest.raises(jwt.ExpiredSignatureError) as exc_info:
            jwt.decode(token, "ledger-test-signing-key-0123456789abcdef", algorithms=["HS256"])

        assert self.classifier.classify(exc_info.value).type == "TokenExpiredError"


class TestStorageErrors:
    """저장소 오류 분류 테스트 클래스"""

    def setup_method(self):
        self.classifier = ErrorClassifier(debug=False)

    def test_validation_messages(self):
        exc = StorageError.validation([
            FieldError(path="holder_type", kind="enum", properties={"enum_values": ["USER", "BUSINESS"]}),
            FieldError(path="account_name", kind="required"),
        ])

        record = self.classifier.classify(exc)

        assert record.status == 400
        assert record.type == "ValidationError"
        assert record.message == (
            "holder_type must be one of: USER, BUSINESS",
            "account_name is required",
        )
        assert record.to_dict()["message"] == list(record.message)

    def test_object_ref_cast(self):
        exc = StorageError(StorageErrorKind.CAST, "bad", path="id", value="x", target_type="ObjectId")
        record = self.classifier.classify(exc)

        assert (record.status, record.message, record.type, record.code) == (
            400, "Invalid id format", "CastError", "INVALID_OBJECT_ID",
        )

    def test_strict_schema(self):
        record = self.classifier.classify(StorageError(StorageErrorKind.STRICT_SCHEMA, path="nickname"))
        assert record.message == "Field 'nickname' is not defined in schema"
        assert record.type == "StrictModeError"

    def test_version_conflict(self):
        record = self.classifier.classify(StorageError(StorageErrorKind.VERSION_CONFLICT))
        assert record.status == 409
        assert record.code == "DOCUMENT_VERSION_CONFLICT"

    def test_duplicate_single_key(self):
        exc = StorageError(StorageErrorKind.DUPLICATE_KEY, key_value={"email": "a@b.com"})
        record = self.classifier.classify(exc)

        assert record.status == 409
        assert record.type == "DuplicateKeyError"
        assert record.message == 'The email "a@b.com" is already in use'

    def test_duplicate_compound_key(self):
        exc = StorageError(StorageErrorKind.DUPLICATE_KEY, key_value={"a": 1, "b": 2})
        record = self.classifier.classify(exc)

        assert record.message == "Duplicate entry found"
        assert record.details == {"a": 1, "b": 2}

    @pytest.mark.parametrize("kind, status, code", [
        (StorageErrorKind.TIMEOUT, 408, "DATABASE_TIMEOUT"),
        (StorageErrorKind.NETWORK, 503, "DATABASE_NETWORK_ERROR"),
        (StorageErrorKind.AUTHENTICATION, 500, "DATABASE_AUTH_ERROR"),
        (StorageErrorKind.WRITE_CONCERN, 500, "WRITE_CONCERN_ERROR"),
        (StorageErrorKind.DRIVER, 500, "DATABASE_DRIVER_ERROR"),
        (StorageErrorKind.DISCONNECTED, 503, "DATABASE_DISCONNECTED"),
        (StorageErrorKind.SERVER_SELECTION, 503, "DATABASE_CONNECTION_FAILED"),
        (StorageErrorKind.ORM, 500, "DATABASE_ERROR"),
    ])
    def test_storage_kinds(self, kind, status, code):
        record = self.classifier.classify(StorageError(kind, "driver said no"))
        assert (record.status, record.code) == (status, code)

    def test_rule_order_wins_over_message(self):
        """메시지에 'permission' 이 있어도 저장소 규칙이 먼저 적용된다"""
        record = self.classifier.classify(StorageError(StorageErrorKind.TIMEOUT, "permission check timed out"))
        assert record.status == 408


class TestOutboundAndValidationErrors:
    """외부 호출 / 입력 검증 오류 분류 테스트 클래스"""

    def setup_method(self):
        self.classifier = ErrorClassifier(debug=False)
        self.request = httpx.Request("GET", "https://upstream.example/quotes")

    def test_upstream_status_error(self):
        response = httpx.Response(503, json={"message": "upstream down"}, request=self.request)
        exc = httpx.HTTPStatusError("503 Service Unavailable", request=self.request, response=response)

        record = self.classifier.classify(exc)

        assert record.status == 503
        assert record.message == "upstream down"
        assert record.type == "ExternalServiceError"
        assert record.code == "EXTERNAL_SERVICE_503"

    def test_upstream_without_response(self):
        record = self.classifier.classify(httpx.ConnectError("connection refused", request=self.request))

        assert record.status == 502
        assert record.code == "EXTERNAL_SERVICE_502"

    def test_pydantic_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            TradingAccountCreate.model_validate({
                "account_number": "ACC-1",
                "account_name": "x" * 101,
                "holder_type": "GUEST",
                "holder_id": "h",
                "group": "g",
                "leverage": 0,
                "login_id": "l",
            })

        record = self.classifier.classify(exc_info.value)

        assert record.status == 400
        assert record.type == "ValidationError"
        assert set(record.message) == {
            "account_name must not exceed 100 characters",
            "holder_type must be one of: 'USER' or 'BUSINESS'",
            "leverage must be at least 1",
            "password is required",
        }


class TestOsAndNativeErrors:
    """OS / 기본 예외 분류 테스트 클래스"""

    @pytest.mark.parametrize("exc, status, type_, code", [
        (FileNotFoundError(errno.ENOENT, "missing"), 404, "FileSystemError", "ENOENT"),
        (PermissionError(errno.EACCES, "denied"), 403, "FileSystemError", "EACCES"),
        (ConnectionRefusedError(errno.ECONNREFUSED, "refused"), 503, "NetworkError", "ECONNREFUSED"),
        (ConnectionResetError("reset"), 502, "NetworkError", "ECONNRESET"),
        (socket.gaierror(socket.EAI_NONAME, "Name or service not known"), 404, "NetworkError", "ENOTFOUND"),
        (PermissionError("not allowed"), 403, "PermissionError", "PERMISSION_DENIED"),
        (RuntimeError("Permission denied for role"), 403, "PermissionError", "PERMISSION_DENIED"),
        (RuntimeError("Rate limit reached"), 429, "RateLimitError", "RATE_LIMIT_EXCEEDED"),
    ])
    def test_os_and_message_rules(self, exc, status, type_, code):
        record = ErrorClassifier().classify(exc)
        assert (record.status, record.type, record.code) == (status, type_, code)

    def test_rate_limit_exception_keeps_its_code(self):
        record = ErrorClassifier().classify(RateLimitException(details={"limit": 1, "window_seconds": 60}))

        assert record.status == 429
        assert record.type == "RateLimitException"
        assert record.details == {"limit": 1, "window_seconds": 60}

    @pytest.mark.parametrize("exc, status, message", [
        (TypeError("unsupported operand"), 400, "Type error occurred"),
        (ValueError("bad"), 400, "Invalid value provided"),
        (json.JSONDecodeError("Expecting value", "", 0), 400, "Invalid value provided"),
        (IndexError("list index out of range"), 400, "Value out of range"),
        (AttributeError("no attribute"), 500, "Reference error occurred"),
    ])
    def test_native_errors(self, exc, status, message):
        record = ErrorClassifier().classify(exc)

        assert record.status == status
        assert record.message == message
        assert record.type == type(exc).__name__
        assert record.code == "NATIVE_ERROR"

    def test_unmapped_native_error_hides_message_in_production(self):
        record = ErrorClassifier(debug=False).classify(KeyError("internal_cache_slot"))

        assert record.status == 500
        assert record.message == "Internal server error"
        assert record.type == "KeyError"

    def test_unmapped_native_error_in_debug(self):
        record = ErrorClassifier(debug=True).classify(KeyError("internal_cache_slot"))
        assert record.message == "'internal_cache_slot'"

    def test_native_error_details_contain_traceback(self):
        try:
            raise LookupError("lost")
        except LookupError as exc:
            record = ErrorClassifier().classify(exc)

        assert "Traceback" in record.details
        assert "LookupError: lost" in record.details


class TestUnknownValues:
    """예외가 아닌 값 분류 테스트 클래스"""

    @pytest.mark.parametrize("value", [None, "boom", 42, {"message": "x"}])
    def test_unknown_values(self, value):
        record = ErrorClassifier().classify(value)

        assert record.status == 500
        assert record.message == "An unexpected error occurred"
        assert record.type == "UnknownError"
        assert record.details == repr(value)

    def test_record_is_immutable(self):
        record = classify_exception(None)

        with pytest.raises(dataclasses.FrozenInstanceError):
            record.status = 200

    def test_to_dict(self):
        assert ErrorRecord(400, ("a", "b"), "ValidationError").to_dict() == {
            "status": 400, "message": ["a", "b"], "type": "ValidationError", "code": None, "details": None,
        }


class TestValidationSentence:
    """검증 문장 생성 테스트 클래스"""

    @pytest.mark.parametrize("error, sentence", [
        (FieldError("name", "minlength", {"minlength": 3}), "name must be at least 3 characters long"),
        (FieldError("amount", "max", {"max": 10}), "amount must not exceed 10"),
        (FieldError("email", "unique"), "email must be unique"),
        (FieldError("code", "pattern", message="code has wrong shape"), "code has wrong shape"),
        (FieldError("code", "pattern"), "Validation failed for code"),
    ])
    def test_sentences(self, error, sentence):
        assert validation_sentence(error) == sentence
