"""
Tests for the GetDX connector, the REST client and retry helpers.
"""

from datetime import date
from unittest.mock import Mock, patch

import pytest
import requests

from connectors import (
    APIException,
    AuthenticationException,
    GetDXClient,
    NotFoundException,
    RateLimitException,
    aggregate_org_productivity,
    fetch_productivity_metrics,
)
from connectors.getdx import TeamThroughput
from connectors.utils import RESTClient, retry_with_backoff


def _response(status_code=200, payload=None, text=""):
    response = Mock()
    response.status_code = status_code
    response.text = text
    response.json.return_value = payload
    return response


def _datafeed(rows):
    return _response(payload={"data": {"rows": rows}})


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr("connectors.utils.retry.time.sleep", lambda _s: None)


class TestRetryWithBackoff:
    """Tests for the retry decorator."""

    def test_retries_until_success(self):
        delays = []
        calls = {"n": 0}

        @retry_with_backoff(
            max_retries=3, initial_delay=1.0, exceptions=(ValueError,), sleep=delays.append
        )
        def flaky():
            calls["n"] += 1
            if calls["n"] < 3:
                raise ValueError("boom")
            return "ok"

        assert flaky() == "ok"
        assert calls["n"] == 3
        assert delays == [1.0, 2.0]

    def test_gives_up_after_max_retries(self):
        delays = []

        @retry_with_backoff(
            max_retries=2, initial_delay=10.0, max_delay=15.0, sleep=delays.append
        )
        def always_fails():
            raise RuntimeError("down")

        with pytest.raises(RuntimeError):
            always_fails()
        assert delays == [10.0, 15.0]

    def test_other_exceptions_are_not_retried(self):
        calls = {"n": 0}

        @retry_with_backoff(max_retries=3, exceptions=(ValueError,))
        def wrong_type():
            calls["n"] += 1
            raise KeyError("nope")

        with pytest.raises(KeyError):
            wrong_type()
        assert calls["n"] == 1


class TestRESTClient:
    """Tests for status-code mapping in the REST client."""

    def test_bearer_token_header(self):
        client = RESTClient("https://example.test/", token="secret")
        assert client.base_url == "https://example.test"
        assert client.headers["Authorization"] == "Bearer secret"

    @pytest.mark.parametrize(
        "status_code, exc_type",
        [
            (401, AuthenticationException),
            (403, AuthenticationException),
            (404, NotFoundException),
            (429, RateLimitException),
            (500, APIException),
        ],
    )
    def test_status_codes_map_to_exceptions(self, status_code, exc_type):
        client = RESTClient("https://example.test")
        with patch(
            "connectors.utils.rest.requests.get",
            return_value=_response(status_code, text="err"),
        ):
            with pytest.raises(exc_type):
                client.get("/thing")

    def test_server_errors_are_retried(self):
        client = RESTClient("https://example.test")
        with patch(
            "connectors.utils.rest.requests.get",
            side_effect=[_response(502), _response(200, {"ok": True})],
        ) as mock_get:
            assert client.get("/thing") == {"ok": True}
        assert mock_get.call_count == 2

    def test_timeout_becomes_api_exception(self):
        client = RESTClient("https://example.test")
        with patch(
            "connectors.utils.rest.requests.get",
            side_effect=requests.exceptions.Timeout("slow"),
        ):
            with pytest.raises(APIException):
                client.get("/thing")


class TestGetDXClient:
    """Tests for the throughput datafeed client."""

    def test_fetch_throughput_rows(self):
        client = GetDXClient(api_key="key")
        rows = [
            ["2025-03-10 00:00:00", "Team Alpha", "4.5", 3],
            ["bad"],
            ["2025-03-11", "Team Beta", None, None],
        ]
        with patch(
            "connectors.utils.rest.requests.get", return_value=_datafeed(rows)
        ) as mock_get:
            parsed = client.fetch_throughput_rows("feed")

        assert [(r.team_name, r.throughput, r.pr_count) for r in parsed] == [
            ("Team Alpha", 4.5, 3),
            ("Team Beta", 0.0, 0),
        ]
        _, kwargs = mock_get.call_args
        assert kwargs["params"] == {"feed_token": "feed"}
        assert kwargs["headers"]["Authorization"] == "Bearer key"

    def test_unexpected_payload_raises(self):
        client = GetDXClient(api_key="key")
        with patch(
            "connectors.utils.rest.requests.get",
            return_value=_response(payload={"data": {}}),
        ):
            with pytest.raises(APIException):
                client.fetch_throughput_rows("feed")

    def test_fetch_throughput_by_team_window(self):
        client = GetDXClient(api_key="key")
        rows = [
            ["2025-03-14", "Team Alpha", 2.0, 1],
            ["2025-03-13T00:00:00Z", "Team Alpha", 3.0, 2],
            ["2025-03-01", "Team Alpha", 100.0, 50],  # outside 7 days
            ["2025-03-12", "Team Beta", 1.5, 1],
        ]
        with patch(
            "connectors.utils.rest.requests.get", return_value=_datafeed(rows)
        ):
            by_team = client.fetch_throughput_by_team(
                "feed", days=7, today=date(2025, 3, 15)
            )

        assert by_team == {
            "Team Alpha": TeamThroughput(throughput=5.0, pr_count=3),
            "Team Beta": TeamThroughput(throughput=1.5, pr_count=1),
        }


class TestFetchProductivityMetrics:
    """fetch_productivity_metrics never raises."""

    def test_not_configured(self):
        result = fetch_productivity_metrics(None, "feed")
        assert result.success is False
        assert result.metrics == []
        assert "not configured" in result.error

        result = fetch_productivity_metrics(GetDXClient(api_key="key"), None)
        assert result.success is False

    def test_connector_failure_is_reported(self):
        client = Mock()
        client.fetch_throughput_by_team.side_effect = AuthenticationException("bad key")
        result = fetch_productivity_metrics(client, "feed")
        assert result.success is False
        assert result.error == "bad key"

    def test_success(self):
        client = GetDXClient(api_key="key")
        rows = [["2025-03-14", "Team Alpha", 6.0, 4], ["2025-03-14", "Team Beta", 2.0, 1]]
        with patch(
            "connectors.utils.rest.requests.get", return_value=_datafeed(rows)
        ):
            result = fetch_productivity_metrics(
                client, "feed", today=date(2025, 3, 15)
            )

        assert result.success is True
        assert sorted(m["team_name"] for m in result.metrics) == ["Team Alpha", "Team Beta"]
        assert aggregate_org_productivity(result.metrics) == {
            "true_throughput": 8.0,
            "pr_count": 5,
        }
