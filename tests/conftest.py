"""Shared fixtures for ILP3 tests.

Provides a receiver secret, minted tokens, sample transfers and
settlement handlers, plus an httpx client wired to an in-process
receiver through ``httpx.ASGITransport``.
"""
from __future__ import annotations

import secrets
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from ilp3.auth.token import Token
from ilp3.core.types import AuthContext, SettlementOutcome, Transfer

# ---------------------------------------------------------------------------
# Common values used across tests
# ---------------------------------------------------------------------------
ACCOUNT = "acct1"
CONDITION = "0xabc0000000000000000000000000000000000000000000000000000000000001"
FULFILLMENT = "0xdef0000000000000000000000000000000000000000000000000000000000002"
DESTINATION = "dest1"
FIXED_NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)
RECEIVER_HOST = "http://receiver.test"


async def chunked(*chunks: bytes) -> AsyncIterator[bytes]:
    """Async byte stream yielding *chunks* in order."""
    for chunk in chunks:
        yield chunk


class RecordingHandler:
    """Settlement handler that records calls and returns a preset outcome."""

    def __init__(self, outcome: SettlementOutcome | None = None, *, read_body: bool = True) -> None:
        self.outcome = outcome
        self.read_body = read_body
        self.calls: list[tuple[AuthContext, Transfer]] = []
        self.bodies: list[bytes] = []

    async def __call__(self, auth: AuthContext, transfer: Transfer) -> SettlementOutcome | None:
        self.calls.append((auth, transfer))
        if self.read_body:
            self.bodies.append(await transfer.data.read())
        return self.outcome


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def secret() -> bytes:
    return secrets.token_bytes(32)


@pytest.fixture()
def token(secret: bytes) -> Token:
    return Token.mint(ACCOUNT, secret)


@pytest.fixture()
def connector(token: Token) -> str:
    return f"http://{token.encode()}@receiver.test/"


@pytest.fixture()
def transfer() -> Transfer:
    return Transfer(
        amount=1000,
        expiry=datetime.now(UTC).replace(microsecond=0) + timedelta(seconds=30),
        condition=CONDITION,
        destination=DESTINATION,
        data=b"hello receiver",
    )


@pytest.fixture()
def fulfilling_handler() -> RecordingHandler:
    return RecordingHandler(SettlementOutcome.fulfill(FULFILLMENT, "thanks"))


@pytest.fixture()
def silent_handler() -> RecordingHandler:
    return RecordingHandler(None)


def asgi_client(app: object) -> httpx.AsyncClient:
    """An httpx client that talks to *app* in-process."""
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),  # type: ignore[arg-type]
        base_url=RECEIVER_HOST,
    )
