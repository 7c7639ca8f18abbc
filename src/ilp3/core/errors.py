"""ILP3 error-code hierarchy.

Every failure the transport core can produce is a concrete exception
class carrying an error code and the HTTP status the receiver answers
with.

Hierarchy
---------
::

    ILP3Error
    +-- AuthError       (ILP3-E1xx)  token verification failures
    +-- SendError       (ILP3-E2xx)  outbound dispatch failures
    +-- ProtocolError   (ILP3-E3xx)  request shape and body failures

Usage
-----
Raise concrete subclasses directly::

    raise TokenExpired(details={"expiry": "2017-12-23T01:21:40.549Z"})

Catch by category::

    try:
        account = verify_token(value, secret)
    except AuthError:
        # handles MalformedToken, SignatureMismatch, TokenExpired, ...
        ...

Every :class:`AuthError` maps to the same 401 on the wire.  The concrete
subclass is only visible to logs and tests.
"""
from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

class ILP3Error(Exception):
    """Base exception for all ILP3 errors.

    Attributes
    ----------
    code : str
        ILP3 error code, e.g. ``"ILP3-E100"``.
    http_status : int
        HTTP status code the receiver responds with.
    message : str
        Human-readable description (MUST NOT contain credentials).
    details : dict[str, Any]
        Machine-readable context specific to the error instance.
    resolution : str
        Suggested action for the caller.
    """

    code: str = "ILP3-E000"
    http_status: int = 500
    message: str = "Unknown ILP3 error"
    resolution: str = ""

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
        resolution: str | None = None,
    ) -> None:
        self.details: dict[str, Any] = details or {}
        if message is not None:
            self.message = message
        if resolution is not None:
            self.resolution = resolution
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialise the error for diagnostics and structured logs."""
        payload: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            payload["detail"] = self.details
        if self.resolution:
            payload["resolution"] = self.resolution
        return {"error": payload}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


# ===================================================================
# Category base classes
# ===================================================================

class AuthError(ILP3Error):
    """ILP3-E1xx -- Bearer token verification errors."""

    code = "ILP3-E1XX"
    http_status = 401
    message = "Unauthorized"


class SendError(ILP3Error):
    """ILP3-E2xx -- Errors surfaced to the sender's caller."""

    code = "ILP3-E2XX"
    http_status = 502


class ProtocolError(ILP3Error):
    """ILP3-E3xx -- Request shape and body errors."""

    code = "ILP3-E3XX"
    http_status = 400


# ===================================================================
# ILP3-E1xx  Authentication
# ===================================================================

class MalformedToken(AuthError):
    """ILP3-E100 -- The bearer value could not be decoded as a token."""

    code = "ILP3-E100"
    message = "Unauthorized: malformed token"
    resolution = "Send a base64-encoded token in the Authorization header."


class SignatureMismatch(AuthError):
    """ILP3-E101 -- The token's HMAC chain does not match the secret."""

    code = "ILP3-E101"
    message = "Unauthorized: signature mismatch"
    resolution = "The token was not issued for this receiver or was tampered with."


class TokenExpired(AuthError):
    """ILP3-E102 -- A ``time <`` caveat bound has been reached."""

    code = "ILP3-E102"
    message = "Unauthorized: expired"
    resolution = "Narrow the token again immediately before sending."


class UnsupportedCaveat(AuthError):
    """ILP3-E103 -- The token carries a caveat this receiver cannot evaluate."""

    code = "ILP3-E103"
    message = "Unauthorized: unsupported caveat"
    resolution = "Only time-bound caveats are understood by this receiver."


# ===================================================================
# ILP3-E2xx  Sending
# ===================================================================

class SendTransportError(SendError):
    """ILP3-E200 -- The request never produced an HTTP response.

    Connection refused, DNS failure and timeouts land here.  The
    underlying ``httpx`` exception is chained as ``__cause__``.  Callers
    may retry; the core does not.
    """

    code = "ILP3-E200"
    message = "Error sending transfer: transport failure"
    resolution = "Check connectivity to the connector and retry."


class RemoteError(SendError):
    """ILP3-E201 -- The remote side answered with a non-2xx status."""

    code = "ILP3-E201"
    message = "Error sending transfer: remote error"

    def __init__(
        self,
        status: int,
        reason: str = "",
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.status = status
        self.reason = reason
        merged = {"status": status, "reason": reason}
        merged.update(details or {})
        super().__init__(
            f"Error sending transfer: {status} {reason}".rstrip(),
            details=merged,
        )


# ===================================================================
# ILP3-E3xx  Protocol
# ===================================================================

class ProtocolShapeError(ProtocolError):
    """ILP3-E300 -- A required ILP header is missing or malformed."""

    code = "ILP3-E300"
    message = "Missing or malformed ILP header"
    resolution = (
        "Send ILP-Amount, ILP-Expiry, ILP-Condition and ILP-Destination "
        "on every transfer."
    )


class PayloadTooLarge(ProtocolError):
    """ILP3-E301 -- The request body exceeds the configured limit."""

    code = "ILP3-E301"
    http_status = 413
    message = "Request body exceeds maximum allowed size"
    resolution = "Reduce the transfer data or use a streaming receiver."


class ClientDisconnected(ProtocolError):
    """ILP3-E302 -- The client went away before the body was received."""

    code = "ILP3-E302"
    http_status = 499
    message = "Client disconnected"


class BodyConsumed(ProtocolError):
    """ILP3-E303 -- A body was read a second time."""

    code = "ILP3-E303"
    http_status = 500
    message = "Body has already been consumed"
