"""Outbound credential resolution.

Connector URIs may embed the sender's credential in their user-info
part (``http://<token>@connector.example:3000``).  Before a request is
dispatched the credential is:

1. taken out of the URI (it never travels in the request line);
2. narrowed with a ``time < now + window`` caveat if it is a token, so
   an intercepted header is only replayable for a short moment;
3. formatted as a ``Bearer`` header value.

Credentials that are not tokens are passed through unchanged as plain
bearer values.
"""
from __future__ import annotations

import logging
import urllib.parse
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from ilp3.auth.token import Caveat, Token
from ilp3.core.clock import format_timestamp, utcnow
from ilp3.core.config import DEFAULT_TOKEN_EXPIRY_MS
from ilp3.core.errors import AuthError
from ilp3.wire.headers import BEARER_SCHEME

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedConnector:
    """A connector URI split into request target and credential.

    ``uri`` has no user-info.  ``authorization`` is the full header value
    or ``None`` when the connector URI carried no credential.
    """

    uri: str
    authorization: str | None


def extract_credential(connector: str) -> tuple[str, str | None]:
    """Split *connector* into ``(uri_without_userinfo, credential)``.

    The credential is ``user:pass`` when a password is present, ``user``
    otherwise, and ``None`` when there is no user-info at all.
    """
    parts = urllib.parse.urlsplit(connector)
    userinfo, at, host = parts.netloc.rpartition("@")
    if not at:
        return connector, None

    user, colon, password = userinfo.partition(":")
    user = urllib.parse.unquote(user)
    password = urllib.parse.unquote(password)
    credential = f"{user}:{password}" if colon and password else user

    stripped = urllib.parse.urlunsplit(parts._replace(netloc=host))
    return stripped, credential or None


class AuthResolver:
    """Turns connector URIs into a bare URI plus a narrowed bearer header.

    Parameters
    ----------
    expiry_window_ms:
        Lifetime in milliseconds of the time caveat added to tokens.
    clock:
        Source of the current time (overridable in tests).
    """

    def __init__(
        self,
        *,
        expiry_window_ms: int = DEFAULT_TOKEN_EXPIRY_MS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if expiry_window_ms <= 0:
            raise ValueError("expiry_window_ms must be positive")
        self._window = timedelta(milliseconds=expiry_window_ms)
        self._clock = clock

    def resolve(self, connector: str, *, now: datetime | None = None) -> ResolvedConnector:
        """Resolve *connector* into a request URI and Authorization value."""
        uri, credential = extract_credential(connector)
        if credential is None:
            return ResolvedConnector(uri=uri, authorization=None)

        expiry = (now if now is not None else self._clock()) + self._window
        bearer = self.narrow(credential, expiry)
        return ResolvedConnector(uri=uri, authorization=f"{BEARER_SCHEME} {bearer}")

    def narrow(self, credential: str, expiry: datetime) -> str:
        """Add a ``time < expiry`` caveat if *credential* is a token."""
        try:
            token = Token.decode(credential)
        except AuthError:
            logger.debug("credential is not a token, using plain bearer token")
            return credential

        narrowed = token.with_caveat(Caveat.time_before(expiry))
        logger.debug("added caveat to token so it expires at: %s", format_timestamp(expiry))
        return narrowed.encode()
