# errors.py: error kinds raised by the ledger core
# -------------------------------------------------------
# The core raises; the boundary layer (CLI / agent) maps to exit codes.

from __future__ import annotations

from typing import Optional

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_NO_RESULTS = 2
EXIT_PLAID_ERROR = 3
EXIT_CONFIG_ERROR = 4


class LedgerError(Exception):
    code = "ERROR"


class ConfigurationError(LedgerError):
    """Not set up, bad date/month format, or an invalid regex."""
    code = "CONFIG_ERROR"


class UpstreamApiError(LedgerError):
    """The aggregation feed failed. `plaid_code` carries Plaid's error_code when known."""
    code = "PLAID_ERROR"

    def __init__(self, message: str, plaid_code: Optional[str] = None):
        super().__init__(message)
        self.plaid_code = plaid_code


class ReconciliationError(LedgerError):
    """A sync pass for one item failed; nothing from that pass was committed."""
    code = "SYNC_ERROR"

    def __init__(self, message: str, item_id: Optional[str] = None):
        super().__init__(message)
        self.item_id = item_id


def exit_code_for(exc: BaseException) -> int:
    if isinstance(exc, ConfigurationError):
        return EXIT_CONFIG_ERROR
    if isinstance(exc, UpstreamApiError):
        return EXIT_PLAID_ERROR
    if isinstance(exc, ReconciliationError) and isinstance(exc.__cause__, UpstreamApiError):
        return EXIT_PLAID_ERROR
    return EXIT_ERROR


def error_payload(exc: BaseException) -> dict:
    """ErrorResponse shape: {"error": {"code", "message"[, "details"]}}."""
    code = exc.code if isinstance(exc, LedgerError) else "UNKNOWN_ERROR"
    out = {"code": code, "message": str(exc)}
    if isinstance(exc, UpstreamApiError) and exc.plaid_code:
        out["details"] = {"plaid_code": exc.plaid_code}
    if isinstance(exc, ReconciliationError) and exc.item_id:
        out["details"] = {"item_id": exc.item_id}
    return {"error": out}
