"""
Unit tests for the PM180 error hierarchy.

CHANGELOG:
- 2026-10-19: Initial creation (STORY-004)

TODO:
- None
"""

import pytest
from pm180.src.errors import (
    AddressInvalid,
    DataInsufficient,
    DataInvalid,
    NoClient,
    PowerMeterError,
    TransportError,
)


class TestErrorCodes:
    @pytest.mark.parametrize(
        ("exc_type", "code"),
        [
            (DataInvalid, "ERR_DATA_INVALID"),
            (TransportError, "ERR_TRANSPORT"),
            (AddressInvalid, "ERR_ADDRESS_INVALID"),
            (NoClient, "ERR_NO_CLIENT"),
        ],
    )
    def test_message_carries_code(self, exc_type: type[PowerMeterError], code: str) -> None:
        exc = exc_type("detail")
        assert isinstance(exc, PowerMeterError)
        assert exc.code == code
        assert str(exc) == f"{code}: detail"
        assert exc.detail == "detail"

    def test_code_only_without_detail(self) -> None:
        assert str(NoClient()) == "ERR_NO_CLIENT"

    def test_insufficient_states_lengths(self) -> None:
        exc = DataInsufficient(expected=38, actual=10)
        assert exc.expected == 38
        assert exc.actual == 10
        assert str(exc) == "ERR_DATA_INSUFFICIENT: Expected 38 bytes but received 10."
