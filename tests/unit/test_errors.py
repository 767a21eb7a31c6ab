"""Tests for cr_common.errors and cr_common.response."""

from src.cr_common.errors import (
    AccountNotFoundError,
    AppError,
    ConcurrencyConflictError,
    DailyCapExceededError,
    FeatureNotAvailableError,
    HoldNotFoundError,
    InsufficientCreditsError,
    InvalidAmountError,
    LedgerInsertFailedError,
    UnauthorizedError,
    UnknownCreditPackError,
)
from src.cr_common.response import ApiResponse, error_response, success_response


class TestAppError:
    def test_base_error(self) -> None:
        err = AppError(code=9002, message="Internal error")
        assert err.code == 9002
        assert err.message == "Internal error"
        assert err.http_status == 500

    def test_is_exception(self) -> None:
        assert isinstance(AppError(code=1, message="x"), Exception)


class TestSpecificErrors:
    def test_insufficient_credits(self) -> None:
        err = InsufficientCreditsError(required=30, available=12)
        assert err.code == 2001
        assert err.http_status == 422
        assert err.required == 30
        assert err.available == 12
        assert "30" in err.message and "12" in err.message

    def test_account_not_found(self) -> None:
        err = AccountNotFoundError("user-9")
        assert (err.code, err.http_status) == (2002, 404)
        assert "user-9" in err.message

    def test_daily_cap_exceeded(self) -> None:
        err = DailyCapExceededError(cap=10, used=10)
        assert (err.code, err.http_status) == (2003, 422)

    def test_invalid_amount(self) -> None:
        assert InvalidAmountError("zero").code == 2004

    def test_concurrency_conflict(self) -> None:
        err = ConcurrencyConflictError("user-1", attempts=5)
        assert (err.code, err.http_status) == (2005, 409)
        assert err.attempts == 5

    def test_ledger_insert_failed(self) -> None:
        err = LedgerInsertFailedError("boom")
        assert (err.code, err.http_status) == (2006, 500)

    def test_hold_not_found(self) -> None:
        err = HoldNotFoundError("h-1")
        assert (err.code, err.http_status) == (3001, 404)

    def test_feature_not_available(self) -> None:
        err = FeatureNotAvailableError("trial", "video model gen4_aleph")
        assert (err.code, err.http_status) == (4001, 403)
        assert "trial" in err.message

    def test_unknown_pack(self) -> None:
        assert UnknownCreditPackError("huge").code == 4002

    def test_unauthorized(self) -> None:
        assert UnauthorizedError().http_status == 401


class TestResponse:
    def test_success_envelope(self) -> None:
        resp = success_response({"balance": 5})
        assert isinstance(resp, ApiResponse)
        assert resp.code == 0
        assert resp.data == {"balance": 5}
        assert resp.request_id.startswith("req_")

    def test_error_envelope(self) -> None:
        resp = error_response(2001, "Insufficient credits")
        assert resp.code == 2001
        assert resp.data is None
