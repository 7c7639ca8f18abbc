"""Transfer <-> HTTP header mapping.

This module provides:

* :func:`encode_transfer` -- the request header set for a transfer.
* :func:`decode_transfer` -- rebuild a :class:`Transfer` from request
  headers and body, raising :class:`ProtocolShapeError` on missing or
  malformed ILP headers.
* :func:`merge_headers` -- case-insensitive, last-write-wins header merge.

All helpers are synchronous and side-effect-free.
"""
from __future__ import annotations

import re
from collections.abc import Mapping

from pydantic import ValidationError

from ilp3.core.body import Body
from ilp3.core.clock import format_timestamp, parse_timestamp
from ilp3.core.errors import ProtocolShapeError
from ilp3.core.types import Transfer
from ilp3.wire.headers import (
    CONTENT_TYPE,
    ILP_AMOUNT,
    ILP_CONDITION,
    ILP_DESTINATION,
    ILP_EXPIRY,
    OCTET_STREAM,
    TRANSFER_HEADERS,
)

_AMOUNT_RE = re.compile(r"^[0-9]+$")


def merge_headers(base: Mapping[str, str], extra: Mapping[str, str]) -> dict[str, str]:
    """Apply *extra* on top of *base*; names compare case-insensitively."""
    merged = dict(base)
    for name, value in extra.items():
        for existing in [key for key in merged if key.lower() == name.lower()]:
            del merged[existing]
        merged[name] = value
    return merged


def encode_transfer(transfer: Transfer, *, user_agent: str = "") -> dict[str, str]:
    """Build the request headers for *transfer*.

    The fixed ILP headers come first, then the transfer's
    ``additional_headers`` (last write wins).
    """
    headers = {
        ILP_AMOUNT: str(transfer.amount),
        ILP_EXPIRY: format_timestamp(transfer.expiry),
        ILP_CONDITION: transfer.condition,
        ILP_DESTINATION: transfer.destination,
        "User-Agent": user_agent,
        CONTENT_TYPE: OCTET_STREAM,
    }
    return merge_headers(headers, transfer.additional_headers)


def _require(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name.lower(), "").strip()
    if not value:
        raise ProtocolShapeError(f"Missing {name} header", details={"header": name})
    return value


def decode_transfer(headers: Mapping[str, str], data: Body | bytes = b"") -> Transfer:
    """Rebuild a transfer from request *headers* and *data*.

    Parameters
    ----------
    headers:
        Request headers.  Lookup is case-insensitive.
    data:
        The request body, buffered or streaming.

    Raises
    ------
    ProtocolShapeError
        If an ILP header is missing, the amount is not a non-negative
        decimal integer, or the expiry is not an ISO-8601 timestamp.
    """
    lowered = {name.lower(): value for name, value in headers.items()}
    amount_text, expiry_text, condition, destination = (
        _require(lowered, name) for name in TRANSFER_HEADERS
    )

    if not _AMOUNT_RE.match(amount_text):
        raise ProtocolShapeError(
            f"Malformed {ILP_AMOUNT} header",
            details={"header": ILP_AMOUNT, "value": amount_text},
        )

    try:
        expiry = parse_timestamp(expiry_text)
    except ValueError as exc:
        raise ProtocolShapeError(
            f"Malformed {ILP_EXPIRY} header",
            details={"header": ILP_EXPIRY, "value": expiry_text},
        ) from exc

    try:
        return Transfer(
            amount=int(amount_text),
            expiry=expiry,
            condition=condition,
            destination=destination,
            data=data,
        )
    except ValidationError as exc:
        raise ProtocolShapeError(f"Invalid transfer: {exc}") from exc
