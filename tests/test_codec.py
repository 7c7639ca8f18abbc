"""Tests for the transfer <-> header mapping."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from conftest import CONDITION, DESTINATION, chunked
from ilp3.core.body import Body
from ilp3.core.errors import ProtocolShapeError
from ilp3.core.types import Transfer
from ilp3.wire.codec import decode_transfer, encode_transfer, merge_headers
from ilp3.wire.headers import TRANSFER_HEADERS

EXPIRY = datetime(2017, 12, 23, 1, 21, 40, 549000, tzinfo=UTC)


def _transfer(**overrides: object) -> Transfer:
    fields: dict[str, object] = {
        "amount": 1000,
        "expiry": EXPIRY,
        "condition": CONDITION,
        "destination": DESTINATION,
        "data": b"payload",
    }
    fields.update(overrides)
    return Transfer(**fields)  # type: ignore[arg-type]


def _request_headers(**overrides: str) -> dict[str, str]:
    headers = {
        "ilp-amount": "1000",
        "ilp-expiry": "2017-12-23T01:21:40.549Z",
        "ilp-condition": CONDITION,
        "ilp-destination": DESTINATION,
    }
    for name, value in overrides.items():
        headers[name.replace("_", "-")] = value
    return headers


class TestMergeHeaders:
    """Tests for merge_headers()."""

    def test_last_write_wins_case_insensitively(self) -> None:
        merged = merge_headers({"Content-Type": "a", "X-One": "1"}, {"content-type": "b"})
        assert merged == {"X-One": "1", "content-type": "b"}

    def test_inputs_are_not_mutated(self) -> None:
        base = {"A": "1"}
        merge_headers(base, {"a": "2"})
        assert base == {"A": "1"}


class TestEncodeTransfer:
    """Tests for encode_transfer()."""

    def test_fixed_headers(self) -> None:
        headers = encode_transfer(_transfer())
        assert headers == {
            "ILP-Amount": "1000",
            "ILP-Expiry": "2017-12-23T01:21:40.549Z",
            "ILP-Condition": CONDITION,
            "ILP-Destination": DESTINATION,
            "User-Agent": "",
            "Content-Type": "application/octet-stream",
        }

    def test_user_agent(self) -> None:
        assert encode_transfer(_transfer(), user_agent="ilp3-test")["User-Agent"] == "ilp3-test"

    def test_additional_headers_applied_last(self) -> None:
        transfer = _transfer(
            additional_headers={"content-type": "text/plain", "X-Trace": "t-1"},
        )
        headers = encode_transfer(transfer)

        assert headers["content-type"] == "text/plain"
        assert "Content-Type" not in headers
        assert headers["X-Trace"] == "t-1"
        assert headers["ILP-Amount"] == "1000"

    def test_expiry_is_rendered_in_utc(self) -> None:
        local = EXPIRY.astimezone(timezone(timedelta(hours=5)))
        assert encode_transfer(_transfer(expiry=local))["ILP-Expiry"] == "2017-12-23T01:21:40.549Z"


class TestDecodeTransfer:
    """Tests for decode_transfer()."""

    def test_decode(self) -> None:
        transfer = decode_transfer(_request_headers(), b"payload")
        assert transfer.amount == 1000
        assert transfer.expiry == EXPIRY
        assert transfer.condition == CONDITION
        assert transfer.destination == DESTINATION
        assert transfer.data.buffered == b"payload"

    def test_header_names_are_case_insensitive(self) -> None:
        headers = {name.upper(): value for name, value in _request_headers().items()}
        assert decode_transfer(headers).amount == 1000

    def test_empty_body_is_present(self) -> None:
        transfer = decode_transfer(_request_headers())
        assert transfer.data.buffered == b""

    def test_offset_expiry_is_normalised(self) -> None:
        transfer = decode_transfer(_request_headers(ilp_expiry="2017-12-23T06:21:40.549+05:00"))
        assert transfer.expiry == EXPIRY
        assert transfer.expiry.tzinfo is UTC

    @pytest.mark.parametrize(
        "missing", ["ilp-amount", "ilp-expiry", "ilp-condition", "ilp-destination"]
    )
    def test_missing_header(self, missing: str) -> None:
        headers = _request_headers()
        del headers[missing]
        with pytest.raises(ProtocolShapeError):
            decode_transfer(headers)

    def test_missing_headers_checked_before_values(self) -> None:
        headers = _request_headers(ilp_amount="abc")
        del headers["ilp-destination"]
        with pytest.raises(ProtocolShapeError) as info:
            decode_transfer(headers)
        assert info.value.details == {"header": "ILP-Destination"}

    def test_encoded_headers_are_required_set(self) -> None:
        encoded = encode_transfer(_transfer())
        assert [name for name in encoded if name in TRANSFER_HEADERS] == list(TRANSFER_HEADERS)

    @pytest.mark.parametrize("amount", ["-1", "1.5", "abc", "1e3", "0x10"])
    def test_malformed_amount(self, amount: str) -> None:
        with pytest.raises(ProtocolShapeError):
            decode_transfer(_request_headers(ilp_amount=amount))

    def test_blank_header_counts_as_missing(self) -> None:
        with pytest.raises(ProtocolShapeError):
            decode_transfer(_request_headers(ilp_condition="   "))

    def test_malformed_expiry(self) -> None:
        with pytest.raises(ProtocolShapeError) as info:
            decode_transfer(_request_headers(ilp_expiry="tomorrow"))
        assert info.value.http_status == 400
        assert info.value.details["header"] == "ILP-Expiry"

    def test_large_amount(self) -> None:
        transfer = decode_transfer(_request_headers(ilp_amount="18446744073709551616"))
        assert transfer.amount == 18446744073709551616


class TestRoundTrip:
    """Encoding and decoding a transfer preserves every field."""

    async def test_buffered(self) -> None:
        original = _transfer()
        decoded = decode_transfer(encode_transfer(original), await original.data.read())

        assert decoded.amount == original.amount
        assert decoded.expiry == original.expiry
        assert decoded.condition == original.condition
        assert decoded.destination == original.destination
        assert await decoded.data.read() == b"payload"

    async def test_streamed(self) -> None:
        original = _transfer(data=chunked(b"pay", b"lo", b"ad"))
        decoded = decode_transfer(encode_transfer(original), original.data)

        assert decoded.data.is_streaming
        assert decoded.expiry == EXPIRY
        assert await decoded.data.read() == b"payload"

    async def test_sub_millisecond_expiry(self) -> None:
        original = _transfer(expiry=datetime(2024, 1, 1, 12, 0, 0, 123456, tzinfo=UTC))
        decoded = decode_transfer(encode_transfer(original), await original.data.read())

        assert original.expiry.microsecond == 123000
        assert decoded.expiry == original.expiry

    async def test_streamed_body_is_passed_through(self) -> None:
        body = Body(chunked(b"x"))
        assert decode_transfer(_request_headers(), body).data is body
