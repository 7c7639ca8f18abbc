"""ILP3 shared domain types.

Key design decisions:
* :class:`Transfer` is a frozen Pydantic model.  Its ``data`` field is a
  :class:`~ilp3.core.body.Body`, so buffered and streamed payloads travel
  through the same code.  ``bytes`` and async byte iterables are coerced
  on construction.
* Expiries are always timezone-aware UTC datetimes truncated to whole
  milliseconds, the precision of the wire format.  Naive values are
  taken to be UTC.
* Per-request results (:class:`AuthContext`, :class:`SettlementOutcome`,
  :class:`SendResult`) are frozen dataclasses and never outlive one
  exchange.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ilp3.core.body import Body

# ---------------------------------------------------------------------------
# Transfer
# ---------------------------------------------------------------------------

class Transfer(BaseModel):
    """A conditional transfer as carried by one HTTP request.

    ``amount``, ``expiry``, ``condition`` and ``destination`` are always
    present.  ``data`` may be empty but is never absent.
    ``additional_headers`` is only meaningful to the sender; it is applied
    after the fixed ILP headers and is not reconstructed on receipt.
    """

    model_config = ConfigDict(strict=True, frozen=True, arbitrary_types_allowed=True)

    amount: int = Field(ge=0, description="Transfer amount in base units.")
    expiry: datetime = Field(description="Absolute expiry of the transfer.")
    condition: str = Field(min_length=1, description="Opaque condition commitment.")
    destination: str = Field(min_length=1, description="Opaque destination address.")
    data: Body = Field(default_factory=Body)
    additional_headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def _coerce_data(cls, value: Any) -> Body:
        return Body.coerce(value)

    @field_validator("expiry")
    @classmethod
    def _normalise_expiry(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        value = value.astimezone(UTC)
        # the wire carries milliseconds only
        return value.replace(microsecond=value.microsecond // 1000 * 1000)

    def loggable(self) -> dict[str, Any]:
        """Field dump with ``data`` rendered as base64 or ``[Stream]``."""
        return {
            "amount": self.amount,
            "expiry": self.expiry.isoformat(),
            "condition": self.condition,
            "destination": self.destination,
            "data": self.data.describe(),
        }


# ---------------------------------------------------------------------------
# Receiver-side request scope
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AuthContext:
    """The verified principal of one inbound request."""

    account: str


@dataclass(frozen=True)
class SettlementOutcome:
    """What a settlement handler decided for one transfer.

    A non-empty ``fulfillment`` means the condition was met: the receiver
    answers 200 with the ``ILP-Fulfillment`` header and ``data`` as body.
    Without a fulfillment the handler may pick ``status`` (and extra
    ``headers``); when it does not, the receiver answers 204.
    """

    fulfillment: str | None = None
    data: bytes | Body = b""
    status: int | None = None
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def fulfilled(self) -> bool:
        return bool(self.fulfillment)

    @classmethod
    def fulfill(cls, fulfillment: str, data: bytes | str | Body = b"") -> SettlementOutcome:
        """Outcome carrying a fulfillment and response data."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        return cls(fulfillment=fulfillment, data=data)

    @classmethod
    def decline(
        cls,
        status: int,
        data: bytes | str = b"",
        headers: Mapping[str, str] | None = None,
    ) -> SettlementOutcome:
        """Outcome without a fulfillment, answered with *status*."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        return cls(status=status, data=data, headers=dict(headers or {}))


# ---------------------------------------------------------------------------
# Sender-side result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SendResult:
    """Result of a successful send.

    ``fulfillment`` is ``None`` when the receiver did not release one.
    ``data`` is ``bytes`` for a buffered send and a streaming
    :class:`Body` when the caller asked for streamed data.
    """

    fulfillment: str | None
    data: bytes | Body
