"""ILP3 sender and receiver configuration.

Defines the validated configuration models consumed by
:class:`~ilp3.sender.HTTPSender` and :func:`~ilp3.receiver.create_receiver`.
Every field except the receiver secret has a default.
"""
from __future__ import annotations

import base64
import binascii

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_BODY_SIZE_LIMIT: int = 1_048_576  # 1 MiB
DEFAULT_TOKEN_EXPIRY_MS: int = 2000
DEFAULT_SEND_TIMEOUT: float = 30.0  # seconds
MIN_SECRET_BYTES: int = 32


class SenderConfig(BaseModel):
    """Configuration for outbound transfers."""

    model_config = ConfigDict(strict=True, frozen=True, extra="forbid")

    token_expiry_ms: int = Field(
        default=DEFAULT_TOKEN_EXPIRY_MS,
        gt=0,
        description=(
            "Validity window in milliseconds of the time caveat added to "
            "outbound tokens.  Short enough to limit replay, long enough "
            "to absorb clock skew and latency."
        ),
    )
    timeout: float = Field(
        default=DEFAULT_SEND_TIMEOUT,
        gt=0,
        description="Transport timeout in seconds for one send.",
    )
    user_agent: str = Field(
        default="",
        description="Value of the User-Agent header (empty by default).",
    )


class ReceiverConfig(BaseModel):
    """Configuration for an ILP3 receiver.

    ``secret`` may be given as raw bytes or as a base64 string.  Either
    way it must hold at least 32 bytes.
    """

    model_config = ConfigDict(strict=True, frozen=True, extra="forbid")

    secret: bytes = Field(
        repr=False,
        description="Root secret used to verify bearer tokens.",
    )
    path: str = Field(
        default="*",
        description="Request path to accept transfers on; ``*`` matches all.",
    )
    stream_data: bool = Field(
        default=False,
        description="Hand the live request stream to the handler instead of buffering.",
    )
    body_size_limit: int = Field(
        default=DEFAULT_BODY_SIZE_LIMIT,
        ge=0,
        description="Maximum buffered request body size in bytes.",
    )

    @field_validator("secret", mode="before")
    @classmethod
    def _decode_secret(cls, value: object) -> object:
        if isinstance(value, str):
            try:
                return base64.b64decode(value, validate=True)
            except binascii.Error as exc:
                raise ValueError("secret string must be base64") from exc
        return value

    @field_validator("secret")
    @classmethod
    def _check_secret_length(cls, value: bytes) -> bytes:
        if len(value) < MIN_SECRET_BYTES:
            raise ValueError(f"secret must be at least {MIN_SECRET_BYTES} bytes")
        return value
