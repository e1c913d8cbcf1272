"""
API 엔드포인트 및 에러 응답 형식 테스트
"""
from unittest.mock import Mock, patch

from app.repository.trading_account import TradingAccountRepository
from app.utils.object_ref import ObjectRef
from conftest import make_account_data

ACCOUNTS_URL = "/api/v1/trading-accounts"
TRANSACTIONS_URL = "/api/v1/transactions"


def create_account(client, number, **overrides):
    response = client.post(ACCOUNTS_URL, json=make_account_data(number, **overrides))
    assert response.status_code == 201
    return response.json()["data"]


class TestTradingAccountApi:
    """거래 계좌 API 테스트 클래스"""

    def test_create_account(self, client):
        response = client.post(ACCOUNTS_URL, json=make_account_data(1))

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["account_number"] == "ACC-001"
        assert "password" not in body["data"]
        assert ObjectRef.is_valid(body["data"]["id"])

    def test_get_account(self, client):
        account = create_account(client, 1)

        response = client.get(f"{ACCOUNTS_URL}/{account['id']}")

        assert response.status_code == 200
        assert response.json()["data"]["login_id"] == "login-1"
        assert "X-Process-Time" in response.headers

    def test_get_account_with_upper_case_id(self, client):
        account = create_account(client, 1)

        response = client.get(f"{ACCOUNTS_URL}/{account['id'].upper()}")

        assert response.status_code == 200
        assert response.json()["data"]["id"] == account["id"]

    def test_list_accounts_with_pagination(self, client):
        for number in (1, 2, 3):
            create_account(client, number)

        response = client.get(ACCOUNTS_URL, params={"page": "1", "length": "2"})

        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]) == 2
        assert body["pagination"] == {"totalItems": 3, "totalPages": 2, "currentPage": 1, "pageSize": 2}

    def test_list_paths_agree(self, client):
        for number in (1, 2, 3, 4):
            create_account(client, number, leverage=10 * (number % 2 + 1))
        params = {"sort": "['+leverage', '-account_number']", "page": "2", "length": "2"}

        by_find = client.get(ACCOUNTS_URL, params=params).json()
        by_aggregation = client.get(ACCOUNTS_URL, params={**params, "aggregate": "true"}).json()

        assert by_aggregation["data"] == by_find["data"]
        assert by_aggregation["pagination"] == by_find["pagination"]

    def test_list_with_filter(self, client):
        create_account(client, 1, holder_type="BUSINESS")
        create_account(client, 2)

        response = client.get(ACCOUNTS_URL, params={"filter": "{'and': {'holder_type': 'BUSINESS'}}"})

        assert [row["account_number"] for row in response.json()["data"]] == ["ACC-001"]

    def test_update_account(self, client):
        account = create_account(client, 1)

        response = client.patch(f"{ACCOUNTS_URL}/{account['id']}", json={"leverage": 100})

        assert response.status_code == 200
        assert response.json()["data"]["leverage"] == 100
        assert response.json()["data"]["version"] == 2

    def test_delete_account(self, client):
        account = create_account(client, 1)

        assert client.delete(f"{ACCOUNTS_URL}/{account['id']}").status_code == 200
        assert client.get(f"{ACCOUNTS_URL}/{account['id']}").status_code == 404
        assert client.get(ACCOUNTS_URL).json()["pagination"]["totalItems"] == 0


class TestErrorResponses:
    """표준 에러 응답 테스트 클래스"""

    def test_error_body_shape(self, client):
        response = client.get(ACCOUNTS_URL, params={"filter": "{'and': {'password': 'x'}}"})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        error = body["error"]
        assert error["type"] == "FieldNotFilterable"
        assert error["message"] == "Field is not filterable: password"
        assert error["code"] == "FIELD_NOT_FILTERABLE"
        assert error["path"] == ACCOUNTS_URL
        assert error["method"] == "GET"
        assert error["details"] == {"fields": ["password"]}
        assert "timestamp" in error

    def test_malformed_filter(self, client):
        response = client.get(ACCOUNTS_URL, params={"filter": "{'and': "})
        assert response.json()["error"]["code"] == "INVALID_FILTER_FORMAT"

    def test_object_filter_value(self, client):
        response = client.get(ACCOUNTS_URL, params={"filter": "{'and': {'account_name': {'x': 1}}}"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_FILTER_FORMAT"

    def test_malformed_sort(self, client):
        response = client.get(ACCOUNTS_URL, params={"sort": "[1]"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_SORT_FORMAT"

    def test_malformed_pagination(self, client):
        response = client.get(ACCOUNTS_URL, params={"page": "first"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_PAGINATION_FORMAT"

    def test_unknown_sort_field(self, client):
        response = client.get(ACCOUNTS_URL, params={"sort": "-nickname"})

        assert response.status_code == 400
        assert response.json()["error"]["type"] == "StrictModeError"

    def test_invalid_object_ref(self, client):
        response = client.get(f"{ACCOUNTS_URL}/not-an-id")

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid id format"
        assert response.json()["error"]["code"] == "INVALID_OBJECT_ID"

    def test_missing_account(self, client):
        missing_id = str(ObjectRef.generate())

        response = client.get(f"{ACCOUNTS_URL}/{missing_id}")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"
        assert response.json()["error"]["message"] == f"Trading account not found: {missing_id}"

    def test_duplicate_account_number(self, client):
        create_account(client, 1)

        response = client.post(ACCOUNTS_URL, json=make_account_data(2, account_number="ACC-001"))

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["type"] == "DuplicateKeyError"
        assert error["message"] == 'The account_number "ACC-001" is already in use'

    def test_request_validation(self, client):
        data = make_account_data(1, holder_type="GUEST")
        del data["password"]

        response = client.post(ACCOUNTS_URL, json=data)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["type"] == "ValidationError"
        assert "password is required" in error["message"]
        assert "holder_type must be one of: 'USER' or 'BUSINESS'" in error["message"]

    def test_unknown_route(self, client):
        response = client.get("/api/v1/unknown")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "HTTP_404"

    def test_method_not_allowed(self, client):
        response = client.put(ACCOUNTS_URL, json={})

        assert response.status_code == 405
        assert response.json()["error"]["code"] == "HTTP_405"

    def test_unexpected_error_in_development(self, client):
        account_id = str(ObjectRef.generate())
        with patch.object(TradingAccountRepository, "find_by_id", side_effect=KeyError("internal_cache_slot")):
            response = client.get(f"{ACCOUNTS_URL}/{account_id}")

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["type"] == "KeyError"
        assert error["message"] == "'internal_cache_slot'"
        assert "Traceback" in error["details"]

    def test_unexpected_error_in_production(self, client):
        """운영 환경에서는 내부 메시지와 details 를 노출하지 않는다"""
        production = Mock(is_production=True)
        account_id = str(ObjectRef.generate())
        with patch("app.middleware.error_middleware.settings", production), \
                patch("app.utils.error_classifier.settings", production), \
                patch.object(TradingAccountRepository, "find_by_id", side_effect=KeyError("internal_cache_slot")):
            response = client.get(f"{ACCOUNTS_URL}/{account_id}")

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["message"] == "Internal server error"
        assert "details" not in error

    def test_error_log_redacts_request(self, client):
        with patch("app.middleware.error_middleware.logger") as mock_logger:
            client.post(
                ACCOUNTS_URL,
                params={"apiKey": "k-123"},
                json={"account_name": "x", "password": "p", "meta": {"apiToken": "t"}},
            )

        context = mock_logger.log_request_error.call_args[0][0]
        assert context["status_code"] == 400
        assert context["body"] == {"account_name": "x", "password": "[REDACTED]", "meta": {"apiToken": "[REDACTED]"}}
        assert context["query"] == {"apiKey": "[REDACTED]"}

    def test_server_errors_are_logged_with_traceback(self, client):
        account_id = str(ObjectRef.generate())
        with patch("app.middleware.error_middleware.logger") as mock_logger, \
                patch.object(TradingAccountRepository, "find_by_id", side_effect=RuntimeError("boom")):
            client.get(f"{ACCOUNTS_URL}/{account_id}")

        assert isinstance(mock_logger.log_request_error.call_args[1]["exc_info"], RuntimeError)


class TestTransactionApi:
    """거래 내역 API 테스트 클래스"""

    def test_create_requires_existing_account(self, client):
        missing_id = str(ObjectRef.generate())

        response = client.post(TRANSACTIONS_URL, json={
            "transaction_type": "DEPOSIT", "amount": 10, "account_id": missing_id,
        })

        assert response.status_code == 404
        assert response.json()["error"]["message"] == f"Trading account not found: {missing_id}"

    def test_create_with_upper_case_account_id(self, client):
        account = create_account(client, 1)

        response = client.post(TRANSACTIONS_URL, json={
            "transaction_type": "DEPOSIT", "amount": 10, "account_id": account["id"].upper(),
        })

        assert response.status_code == 201
        assert response.json()["data"]["account_id"] == account["id"]

    def test_create_and_list_with_account(self, client):
        account = create_account(client, 1, account_name="Main")
        for amount in (100, 250):
            response = client.post(TRANSACTIONS_URL, json={
                "transaction_type": "DEPOSIT", "amount": amount, "account_id": account["id"],
            })
            assert response.status_code == 201

        response = client.get(f"{TRANSACTIONS_URL}/with-account", params={
            "filter": "{'and': {'account_name__like': 'main'}}", "sort": "+amount",
        })

        assert response.status_code == 200
        body = response.json()
        assert [(row["amount"], row["account_number"]) for row in body["data"]] == [
            (100.0, "ACC-001"), (250.0, "ACC-001"),
        ]
        assert body["pagination"]["totalItems"] == 2

    def test_update_and_delete_transaction(self, client):
        account = create_account(client, 1)
        transaction = client.post(TRANSACTIONS_URL, json={
            "transaction_type": "WITHDRAW", "amount": 5, "account_id": account["id"],
        }).json()["data"]

        updated = client.patch(f"{TRANSACTIONS_URL}/{transaction['id']}", json={"description": "fee"})
        assert updated.json()["data"]["description"] == "fee"

        assert client.delete(f"{TRANSACTIONS_URL}/{transaction['id']}").status_code == 200
        assert client.get(f"{TRANSACTIONS_URL}/{transaction['id']}").status_code == 404


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "healthy"
