# TESTS/test_errors.py
from errors import (
    EXIT_CONFIG_ERROR,
    EXIT_ERROR,
    EXIT_PLAID_ERROR,
    ConfigurationError,
    ReconciliationError,
    UpstreamApiError,
    error_payload,
    exit_code_for,
)


def test_exit_codes():
    assert exit_code_for(ConfigurationError("x")) == EXIT_CONFIG_ERROR
    assert exit_code_for(UpstreamApiError("x")) == EXIT_PLAID_ERROR
    assert exit_code_for(ReconciliationError("x")) == EXIT_ERROR
    assert exit_code_for(RuntimeError("x")) == EXIT_ERROR


def test_sync_failure_caused_by_feed_maps_to_plaid_exit_code():
    try:
        try:
            raise UpstreamApiError("down")
        except UpstreamApiError as e:
            raise ReconciliationError("Sync failed", "item_1") from e
    except ReconciliationError as err:
        assert exit_code_for(err) == EXIT_PLAID_ERROR


def test_error_payloads():
    assert error_payload(ConfigurationError("Not configured")) == {
        "error": {"code": "CONFIG_ERROR", "message": "Not configured"}
    }
    assert error_payload(UpstreamApiError("boom", plaid_code="RATE_LIMIT_EXCEEDED"))["error"]["details"] == {
        "plaid_code": "RATE_LIMIT_EXCEEDED"
    }
    assert error_payload(ReconciliationError("x", item_id="item_1"))["error"]["details"] == {"item_id": "item_1"}
    assert error_payload(ValueError("y"))["error"]["code"] == "UNKNOWN_ERROR"
