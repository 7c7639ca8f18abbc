"""ILP3 bearer authentication.

This subpackage implements the caveated token model shared by the
sender and the receiver.

Public API
----------
- :class:`Token` -- caveated bearer token with an HMAC chain signature.
- :class:`Caveat` / :class:`CaveatKind` -- tagged caveat variants.
- :func:`evaluate_caveat` -- closed-world caveat evaluator.
- :func:`verify_token` -- stateless verification returning the account.
- :class:`AuthResolver` -- outbound credential narrowing.
"""
from __future__ import annotations

from ilp3.auth.caveats import CaveatEvaluator, check_time_before, evaluate_caveat
from ilp3.auth.resolver import AuthResolver, ResolvedConnector, extract_credential
from ilp3.auth.token import Caveat, CaveatKind, Token, derive_key
from ilp3.auth.verifier import parse_bearer, verify_token

__all__ = [
    "AuthResolver",
    "Caveat",
    "CaveatEvaluator",
    "CaveatKind",
    "ResolvedConnector",
    "Token",
    "check_time_before",
    "derive_key",
    "evaluate_caveat",
    "extract_credential",
    "parse_bearer",
    "verify_token",
]
