"""Stateless bearer token verification.

Verification steps:

1. **Decode** -- the bearer value must be a well-formed token.
2. **Identify** -- recover the identifier.
3. **Signature** -- the HMAC chain recomputed from the secret and every
   caveat must equal the token's signature.
4. **Caveats** -- each caveat, in append order, must pass the evaluator.
   All caveats are evaluated against one pinned instant.

If ANY step fails, the request MUST be rejected.  Nothing is remembered
between calls.
"""
from __future__ import annotations

import logging
from datetime import datetime

from ilp3.auth.caveats import CaveatEvaluator, evaluate_caveat
from ilp3.auth.token import Token
from ilp3.core.clock import utcnow
from ilp3.core.errors import SignatureMismatch
from ilp3.wire.headers import BEARER_SCHEME

logger = logging.getLogger(__name__)


def verify_token(
    token_value: str,
    secret: bytes,
    *,
    evaluator: CaveatEvaluator = evaluate_caveat,
    now: datetime | None = None,
) -> str:
    """Verify a base64 token against *secret* and return its identifier.

    Parameters
    ----------
    token_value:
        The bearer value, without the ``Bearer`` scheme.
    secret:
        The root secret the token was minted with.
    evaluator:
        Called once per caveat with ``(caveat, now)``.
    now:
        Instant to evaluate caveats at (defaults to the current time).

    Returns
    -------
    str
        The token identifier (the account).

    Raises
    ------
    MalformedToken
        Step 1: the value is not a token.
    SignatureMismatch
        Step 3: the token was not minted from *secret* or was altered.
    TokenExpired
        Step 4: a time bound has been reached.
    UnsupportedCaveat
        Step 4: a caveat of an unrecognised kind is present.
    """
    # Step 1 + 2: decode and identify
    token = Token.decode(token_value)
    account = token.identifier
    logger.debug("token is for account: %s", account)

    # Step 3: signature chain
    if not token.signature_matches(secret):
        raise SignatureMismatch(details={"account": account})

    # Step 4: caveats, in order, against one instant
    instant = now if now is not None else utcnow()
    for caveat in token.caveats:
        evaluator(caveat, instant)

    logger.debug("token passed validation")
    return account


def parse_bearer(authorization: str | None) -> str:
    """Strip the ``Bearer`` scheme (case-insensitive) from a header value.

    A missing header yields an empty string, which fails decoding.
    """
    if not authorization:
        return ""
    scheme, _, credentials = authorization.strip().partition(" ")
    if scheme.lower() == BEARER_SCHEME.lower():
        return credentials.strip()
    return authorization.strip()
