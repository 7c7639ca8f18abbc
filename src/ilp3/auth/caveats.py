"""Closed-world caveat evaluation.

An evaluator is a state-free callable invoked once per caveat with the
instant the whole verification is pinned to.  It returns nothing on
success and raises an :class:`~ilp3.core.errors.AuthError` otherwise.

The default :func:`evaluate_caveat` knows one kind, ``TIME_BEFORE``.
Every other kind fails: a caveat only ever narrows a token, so skipping
one the receiver does not understand would widen it.
"""
from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from ilp3.auth.token import Caveat, CaveatKind
from ilp3.core.clock import format_timestamp, parse_timestamp
from ilp3.core.errors import TokenExpired, UnsupportedCaveat

CaveatEvaluator = Callable[[Caveat, datetime], None]


def evaluate_caveat(caveat: Caveat, now: datetime) -> None:
    """Default evaluator.

    Raises
    ------
    TokenExpired
        For ``time < T`` when ``now >= T``.
    UnsupportedCaveat
        For any other kind, or a time bound that does not parse.
    """
    if caveat.kind is CaveatKind.TIME_BEFORE:
        check_time_before(caveat.payload, now)
        return
    raise UnsupportedCaveat(details={"kind": str(caveat.kind)})


def check_time_before(bound_text: str, now: datetime) -> None:
    """Fail unless *now* is strictly before the bound."""
    try:
        bound = parse_timestamp(bound_text)
    except ValueError as exc:
        raise UnsupportedCaveat(details={"kind": "time-before", "reason": "bad timestamp"}) from exc
    if now >= bound:
        raise TokenExpired(
            details={"expiry": format_timestamp(bound), "now": format_timestamp(now)}
        )
