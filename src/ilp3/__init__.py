"""ILP3 -- conditional transfers over HTTP.

A sender posts a transfer (amount, expiry, condition, destination and
data) with a caveated bearer token; a receiver verifies the token,
extracts the transfer, asks a settlement handler whether to release a
fulfillment and answers accordingly.

Modules
-------
1. Core types, errors, config (:mod:`ilp3.core`)
2. Bearer tokens and caveats (:mod:`ilp3.auth`)
3. Wire mapping (:mod:`ilp3.wire`)
4. Sender (:mod:`ilp3.sender`)
5. Receiver pipeline and ASGI app (:mod:`ilp3.pipeline`, :mod:`ilp3.receiver`)
"""
from __future__ import annotations

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Core types, errors, config
# ---------------------------------------------------------------------------
from ilp3.core.body import Body
from ilp3.core.config import ReceiverConfig, SenderConfig
from ilp3.core.errors import (
    AuthError,
    BodyConsumed,
    ClientDisconnected,
    ILP3Error,
    MalformedToken,
    PayloadTooLarge,
    ProtocolError,
    ProtocolShapeError,
    RemoteError,
    SendError,
    SendTransportError,
    SignatureMismatch,
    TokenExpired,
    UnsupportedCaveat,
)
from ilp3.core.types import AuthContext, SendResult, SettlementOutcome, Transfer

# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------
from ilp3.auth import (
    AuthResolver,
    Caveat,
    CaveatKind,
    Token,
    evaluate_caveat,
    verify_token,
)

# ---------------------------------------------------------------------------
# Sender and receiver
# ---------------------------------------------------------------------------
from ilp3.pipeline import HTTPResponse, ReceiverPipeline, RequestContext
from ilp3.receiver import ReceiverApp, create_receiver
from ilp3.sender import HTTPSender, send

__all__ = [
    "__version__",
    # Core
    "Body",
    "Transfer",
    "AuthContext",
    "SettlementOutcome",
    "SendResult",
    "SenderConfig",
    "ReceiverConfig",
    # Errors
    "ILP3Error",
    "AuthError",
    "MalformedToken",
    "SignatureMismatch",
    "TokenExpired",
    "UnsupportedCaveat",
    "SendError",
    "SendTransportError",
    "RemoteError",
    "ProtocolError",
    "ProtocolShapeError",
    "PayloadTooLarge",
    "ClientDisconnected",
    "BodyConsumed",
    # Auth
    "Token",
    "Caveat",
    "CaveatKind",
    "AuthResolver",
    "evaluate_caveat",
    "verify_token",
    # Sender / receiver
    "HTTPSender",
    "send",
    "ReceiverPipeline",
    "RequestContext",
    "HTTPResponse",
    "ReceiverApp",
    "create_receiver",
]
