"""Tests for the GS Engage client."""

from unittest.mock import MagicMock

import pytest
import requests

from integrations.growthstation import (
    LEADS_ENDPOINT,
    PROSPECTIONS_ENDPOINT,
    GrowthstationClient,
    _error_message,
)
from scripts.lib.circuit_breaker import CircuitBreaker
from scripts.lib.config import GrowthstationConfig
from scripts.lib.errors import (
    APIAuthError,
    APIConnectionError,
    APIError,
    APIRateLimitError,
    APITimeoutError,
    APIValidationError,
    CircuitOpenError,
)


def _response(status=200, payload=None, headers=None):
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers or {}
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
        resp.text = "<html>oops</html>"
    else:
        resp.json.return_value = payload
        resp.text = ""
    return resp


def _page(records, total_pages=None):
    body = {"data": records}
    if total_pages is not None:
        body["meta"] = {"totalPages": total_pages}
    return _response(200, body)


def _client(*responses, **config_kwargs):
    session = MagicMock()
    session.get.side_effect = list(responses)
    config = GrowthstationConfig(
        api_url="https://gs.example.test/api/", api_key="secret", **config_kwargs
    )
    breaker = CircuitBreaker("growthstation-test", failure_threshold=3)
    return GrowthstationClient(config, session=session, breaker=breaker), session


class TestPagination:
    def test_walks_pages_until_total_pages(self):
        client, session = _client(
            _page([{"id": 1}, {"id": 2}], total_pages=3),
            _page([{"id": 3}], total_pages=3),
            _page([{"id": 4}], total_pages=3),
        )
        records = client.fetch_all_pages(PROSPECTIONS_ENDPOINT)

        assert [r["id"] for r in records] == [1, 2, 3, 4]
        assert session.get.call_count == 3
        url = session.get.call_args_list[0].args[0]
        assert url == "https://gs.example.test/api/prospections"
        params = [c.kwargs["params"] for c in session.get.call_args_list]
        assert [p["page"] for p in params] == [1, 2, 3]
        assert all(p["limit"] == 100 and p["apiKey"] == "secret" for p in params)
        assert session.get.call_args_list[0].kwargs["timeout"] == 30.0

    def test_missing_meta_means_single_page(self):
        client, session = _client(_page([{"id": 1}]))
        assert len(client.get_leads()) == 1
        assert session.get.call_count == 1
        assert session.get.call_args.args[0].endswith(LEADS_ENDPOINT)

    def test_stops_on_empty_page(self):
        client, session = _client(_page([{"id": 1}], total_pages=10), _page([], total_pages=10))
        assert len(client.get_prospections()) == 1
        assert session.get.call_count == 2

    def test_page_bound(self):
        client, session = _client(
            *[_page([{"id": i}], total_pages=50) for i in range(5)], max_pages=2
        )
        assert len(client.fetch_all_pages(PROSPECTIONS_ENDPOINT)) == 2
        assert session.get.call_count == 2

    def test_page_size_clamped_to_100(self):
        client, session = _client(_page([{"id": 1}]), page_size=500)
        client.fetch_all_pages(PROSPECTIONS_ENDPOINT)
        assert session.get.call_args.kwargs["params"]["limit"] == 100

    def test_400_mid_pagination_keeps_collected_records(self):
        client, _ = _client(
            _page([{"id": 1}, {"id": 2}], total_pages=5),
            _response(400, {"query": [{"path": ["page"], "message": "page out of range"}]}),
        )
        assert [r["id"] for r in client.fetch_all_pages(PROSPECTIONS_ENDPOINT)] == [1, 2]

    def test_400_on_first_page_propagates(self):
        client, session = _client(
            _response(400, {"query": [{"path": ["limit"], "message": "must be <= 100"}]}),
        )
        with pytest.raises(APIValidationError) as exc:
            client.fetch_all_pages(PROSPECTIONS_ENDPOINT)
        assert exc.value.status_code == 400
        assert exc.value.message == "Invalid 'limit' parameter: must be <= 100"
        assert session.get.call_count == 1


class TestErrors:
    def test_auth_failure_propagates(self):
        client, _ = _client(_response(401, {"message": "invalid key"}))
        with pytest.raises(APIAuthError) as exc:
            client.get_prospections()
        assert "secret" not in str(exc.value)

    def test_rate_limit(self):
        client, _ = _client(_response(429, {}, headers={"Retry-After": "30"}))
        with pytest.raises(APIRateLimitError) as exc:
            client.get_prospections()
        assert exc.value.details["retry_after"] == 30

    def test_other_4xx_is_validation_error(self):
        client, _ = _client(_response(422, {"error": {"message": "bad filter"}}))
        with pytest.raises(APIValidationError, match="bad filter"):
            client.get_prospections()

    def test_server_error(self):
        client, _ = _client(_response(503, "Service Unavailable"))
        with pytest.raises(APIError) as exc:
            client.get_prospections()
        assert exc.value.status_code == 503
        assert exc.value.code == "API_SERVER_ERROR"
        assert client.breaker.failure_count == 1

    def test_timeout(self):
        client, _ = _client(requests.exceptions.Timeout("read timed out"))
        with pytest.raises(APITimeoutError):
            client.get_prospections()

    def test_connection_error(self):
        client, _ = _client(requests.exceptions.ConnectionError("refused"))
        with pytest.raises(APIConnectionError):
            client.get_prospections()

    def test_non_json_body(self):
        client, _ = _client(_response(200, ValueError("no json")))
        with pytest.raises(APIError) as exc:
            client.get_prospections()
        assert exc.value.code == "API_BAD_RESPONSE"

    def test_circuit_opens_after_repeated_failures(self):
        client, session = _client(*[_response(500, {}) for _ in range(3)])
        for _ in range(3):
            with pytest.raises(APIError):
                client.get_prospections()

        with pytest.raises(CircuitOpenError):
            client.get_prospections()
        assert session.get.call_count == 3
        assert client.get_status()["circuit"]["state"] == CircuitBreaker.OPEN


class TestErrorMessage:
    def test_limit_complaint(self):
        payload = {"query": [{"path": ["limit"], "message": "must be <= 100"}]}
        assert _error_message(payload, 400) == "Invalid 'limit' parameter: must be <= 100"

    def test_query_messages_joined(self):
        payload = {"query": [{"path": ["page"], "message": "a"}, {"message": "b"}]}
        assert _error_message(payload, 400) == "Validation error: a, b"

    def test_fallback(self):
        assert _error_message(None, 418) == "API returned 418"
