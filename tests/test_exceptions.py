"""Tests for the odsquota exception hierarchy."""

import json
from decimal import Decimal

from odsquota.exceptions import (
    AlreadySettled,
    CalculationException,
    InvalidQuantity,
    InvalidUnit,
    LedgerException,
    OdsQuotaException,
    QuotaExceeded,
    StoreUnavailable,
    SubstanceNotFound,
    format_exception_chain,
    is_retriable,
)


class TestHierarchy:

    def test_error_codes(self):
        assert SubstanceNotFound("R-999").error_code == "ODS_SUBSTANCE_NOT_FOUND"
        assert AlreadySettled("imp_1").error_code == "ODS_ALREADY_SETTLED"
        assert str(InvalidUnit("litre")).startswith("[ODS_INVALID_UNIT] - ")
        assert InvalidQuantity("R-22", Decimal("-1")).error_code == "ODS_INVALID_QUANTITY"

    def test_families(self):
        assert isinstance(InvalidUnit("litre"), CalculationException)
        assert isinstance(InvalidQuantity("R-22", Decimal("-1")), CalculationException)
        assert isinstance(QuotaExceeded("IMP-001", 1, 0, 1), LedgerException)
        assert isinstance(StoreUnavailable("down"), OdsQuotaException)

    def test_severity_flags(self):
        assert AlreadySettled("imp_1").fatal is False
        assert SubstanceNotFound("R-999").fatal is True
        assert is_retriable(StoreUnavailable("down")) is True
        assert is_retriable(AlreadySettled("imp_1")) is False
        assert is_retriable(RuntimeError("boom")) is False


class TestSerialization:

    def test_to_json_renders_decimals(self):
        exc = QuotaExceeded(
            "IMP-001",
            required_co2=Decimal("20.01"),
            remaining_before=Decimal("20.00"),
            deficit=Decimal("0.01"),
        )
        payload = json.loads(exc.to_json())
        assert payload["error_type"] == "QuotaExceeded"
        assert payload["context"]["deficit"] == "0.01"
        assert payload["fatal"] is True

    def test_store_unavailable_cause(self):
        exc = StoreUnavailable("settle failed", operation="settle", cause=OSError("disk"))
        assert exc.context == {
            "operation": "settle",
            "cause": "disk",
            "cause_type": "OSError",
        }


class TestExceptionChain:

    def test_chain_formatting(self):
        try:
            try:
                raise OSError("connection reset")
            except OSError as e:
                raise StoreUnavailable("settle failed", operation="settle") from e
        except StoreUnavailable as exc:
            text = format_exception_chain(exc)

        assert "[ODS_STORE_UNAVAILABLE] - settle failed" in text
        assert "OSError: connection reset" in text
