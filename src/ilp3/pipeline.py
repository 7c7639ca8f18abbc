"""ILP3 receiver pipeline.

A request runs through an ordered list of stages.  Each stage takes an
immutable :class:`RequestContext` and returns a new one, so every stage
can be exercised on its own:

1. **verify** -- the ``Authorization`` bearer token is checked against
   the receiver secret; the verified account is attached as
   :class:`AuthContext`.
2. **extract** -- the :class:`Transfer` is rebuilt from the ILP headers
   and the body.  Buffered receivers read the body up to the size limit
   before anything else happens.
3. **handle** -- the caller's settlement handler decides whether to
   release a fulfillment.

:func:`respond` then turns the final context into an :class:`HTTPResponse`.
A stage that raises ends the request: later stages never run.

Usage
-----
::

    async def settle(auth: AuthContext, transfer: Transfer) -> SettlementOutcome | None:
        if transfer.amount >= 1000:
            return SettlementOutcome.fulfill(fulfillment, b"thanks")
        return None

    pipeline = ReceiverPipeline(settle, secret=secret)
    response = await pipeline.process(context)
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime

from ilp3.auth.caveats import CaveatEvaluator, evaluate_caveat
from ilp3.auth.verifier import parse_bearer, verify_token
from ilp3.core.body import Body
from ilp3.core.clock import utcnow
from ilp3.core.config import DEFAULT_BODY_SIZE_LIMIT, MIN_SECRET_BYTES, ReceiverConfig
from ilp3.core.errors import AuthError, ClientDisconnected, ILP3Error
from ilp3.core.types import AuthContext, SettlementOutcome, Transfer
from ilp3.wire.codec import decode_transfer, merge_headers
from ilp3.wire.headers import AUTHORIZATION, CONTENT_TYPE, ILP_FULFILLMENT, OCTET_STREAM

logger = logging.getLogger(__name__)

UNAUTHORIZED_BODY = b"invalid token"
_TEXT_PLAIN = "text/plain; charset=utf-8"


# ---------------------------------------------------------------------------
# Request / response values
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RequestContext:
    """Everything known about one request at a given stage.

    ``headers`` uses lower-case names.  ``auth``, ``transfer`` and
    ``outcome`` are filled in by the verify, extract and handle stages.
    """

    method: str
    path: str
    headers: Mapping[str, str]
    body: Body = field(default_factory=Body)
    auth: AuthContext | None = None
    transfer: Transfer | None = None
    outcome: SettlementOutcome | None = None


@dataclass(frozen=True)
class HTTPResponse:
    """Status, headers and body to send back for one request."""

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes | Body = b""

    def __post_init__(self) -> None:
        # HTTP/1.1 header fields are latin-1 on the wire
        for name, value in self.headers.items():
            try:
                name.encode("latin-1")
                value.encode("latin-1")
            except UnicodeEncodeError as exc:
                raise ValueError(f"header {name!r} is not encodable as latin-1") from exc


def text_response(status: int, text: str, headers: Mapping[str, str] | None = None) -> HTTPResponse:
    """Plain-text response used for every rejection."""
    merged = {CONTENT_TYPE: _TEXT_PLAIN}
    merged.update(headers or {})
    return HTTPResponse(status=status, headers=merged, body=text.encode("utf-8"))


SettlementHandler = Callable[[AuthContext, Transfer], Awaitable[SettlementOutcome | None]]
"""Decides whether a transfer is fulfilled.  Opaque to the pipeline."""

Stage = Callable[[RequestContext], Awaitable[RequestContext]]


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def verify_stage(
    secret: bytes,
    *,
    evaluator: CaveatEvaluator = evaluate_caveat,
    clock: Callable[[], datetime] = utcnow,
) -> Stage:
    """Stage 1: authenticate the bearer token."""

    async def verify(ctx: RequestContext) -> RequestContext:
        token_value = parse_bearer(ctx.headers.get(AUTHORIZATION.lower()))
        account = verify_token(token_value, secret, evaluator=evaluator, now=clock())
        return replace(ctx, auth=AuthContext(account=account))

    return verify


def extract_stage(
    *,
    stream_data: bool = False,
    body_size_limit: int = DEFAULT_BODY_SIZE_LIMIT,
) -> Stage:
    """Stage 2: rebuild the transfer from headers and body."""

    async def extract(ctx: RequestContext) -> RequestContext:
        if stream_data:
            data = ctx.body
        else:
            data = Body(await ctx.body.read(limit=body_size_limit))
        transfer = decode_transfer(ctx.headers, data)
        logger.debug("got transfer: %s", transfer.loggable())
        return replace(ctx, transfer=transfer)

    return extract


def handle_stage(handler: SettlementHandler) -> Stage:
    """Stage 3: hand the verified transfer to the settlement handler."""

    async def handle(ctx: RequestContext) -> RequestContext:
        if ctx.auth is None or ctx.transfer is None:
            raise RuntimeError("handle stage requires a verified account and a transfer")
        outcome = await handler(ctx.auth, ctx.transfer)
        if outcome is not None and not isinstance(outcome, SettlementOutcome):
            raise TypeError(
                f"settlement handler returned {type(outcome).__name__}, "
                "expected SettlementOutcome or None"
            )
        return replace(ctx, outcome=outcome)

    return handle


def respond(ctx: RequestContext) -> HTTPResponse:
    """Turn the handled context into a response.

    With a fulfillment: 200, ``ILP-Fulfillment`` set, body = outcome data.
    Without one: the handler's status, or 204 when it chose none.  The
    fulfillment header is never emitted without a fulfillment.
    """
    outcome = ctx.outcome
    if outcome is not None and outcome.fulfilled:
        logger.debug("responding to sender with fulfillment")
        return HTTPResponse(
            status=200,
            headers={ILP_FULFILLMENT: outcome.fulfillment or "", CONTENT_TYPE: OCTET_STREAM},
            body=outcome.data,
        )

    if outcome is None or outcome.status is None:
        return HTTPResponse(status=204)

    headers = {
        name: value
        for name, value in outcome.headers.items()
        if name.lower() != ILP_FULFILLMENT.lower()
    }
    if outcome.data and not any(name.lower() == CONTENT_TYPE.lower() for name in headers):
        headers = merge_headers({CONTENT_TYPE: OCTET_STREAM}, headers)
    return HTTPResponse(status=outcome.status, headers=headers, body=outcome.data)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class ReceiverPipeline:
    """Runs verify -> extract -> handle -> respond for each request.

    Parameters
    ----------
    handler:
        The settlement handler.
    secret:
        Root secret for token verification (at least 32 bytes).
    stream_data:
        Pass the live request body to the handler instead of buffering.
    body_size_limit:
        Maximum buffered body size in bytes.
    evaluator:
        Caveat evaluator used by the verify stage.
    clock:
        Source of the current time for caveat evaluation.
    """

    def __init__(
        self,
        handler: SettlementHandler,
        *,
        secret: bytes,
        stream_data: bool = False,
        body_size_limit: int = DEFAULT_BODY_SIZE_LIMIT,
        evaluator: CaveatEvaluator = evaluate_caveat,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if len(secret) < MIN_SECRET_BYTES:
            raise ValueError(f"secret must be at least {MIN_SECRET_BYTES} bytes")
        self._stream_data = stream_data
        self._stages: tuple[Stage, ...] = (
            verify_stage(secret, evaluator=evaluator, clock=clock),
            extract_stage(stream_data=stream_data, body_size_limit=body_size_limit),
            handle_stage(handler),
        )

    @classmethod
    def from_config(
        cls,
        config: ReceiverConfig,
        handler: SettlementHandler,
        *,
        evaluator: CaveatEvaluator = evaluate_caveat,
        clock: Callable[[], datetime] = utcnow,
    ) -> ReceiverPipeline:
        """Build a pipeline from a validated :class:`ReceiverConfig`."""
        return cls(
            handler,
            secret=config.secret,
            stream_data=config.stream_data,
            body_size_limit=config.body_size_limit,
            evaluator=evaluator,
            clock=clock,
        )

    @property
    def stages(self) -> Sequence[Stage]:
        return self._stages

    @property
    def stream_data(self) -> bool:
        return self._stream_data

    async def run(self, ctx: RequestContext) -> RequestContext:
        """Run every stage in order and return the final context."""
        for stage in self._stages:
            ctx = await stage(ctx)
        return ctx

    async def process(self, ctx: RequestContext) -> HTTPResponse:
        """Run the pipeline and map failures to responses.

        Every :class:`AuthError` becomes the same 401 with a generic body.
        Other ILP3 errors use their ``http_status`` and message.
        :class:`ClientDisconnected` propagates: there is nobody left to
        answer.
        """
        try:
            return respond(await self.run(ctx))
        except AuthError as exc:
            logger.warning("invalid token: %s", exc.message)
            logger.debug("token rejection detail: %s", exc.to_dict())
            return text_response(401, UNAUTHORIZED_BODY.decode("ascii"))
        except ClientDisconnected:
            raise
        except ILP3Error as exc:
            logger.warning("rejected transfer: %s", exc.message)
            return text_response(exc.http_status, exc.message)
        except Exception:
            logger.exception("unexpected error while processing transfer")
            return text_response(500, "Internal Server Error")
