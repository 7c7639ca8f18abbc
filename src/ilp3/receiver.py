"""ASGI binding for the ILP3 receiver.

:func:`create_receiver` returns an ASGI 3 application that routes
``POST`` requests on the configured path into a :class:`ReceiverPipeline`.
It runs under any ASGI server and in-process through
``httpx.ASGITransport``.

* Non-``POST`` methods on the receiver path get 405 with ``Allow: POST``.
* Other paths get 404.  ``path="*"`` accepts every path.
* One task reads ASGI ``receive`` while the pipeline runs.  It buffers
  the body ahead of the reader up to :data:`READ_AHEAD_BYTES` unread
  bytes.  A disconnect before the body is complete raises
  :class:`ClientDisconnected` inside whatever is reading it.
* A disconnect at any point cancels the in-flight handler, whether or
  not it has read the body.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, MutableMapping
from datetime import datetime
from typing import Any

from ilp3.auth.caveats import CaveatEvaluator, evaluate_caveat
from ilp3.core.body import Body
from ilp3.core.clock import utcnow
from ilp3.core.config import ReceiverConfig
from ilp3.core.errors import ClientDisconnected
from ilp3.pipeline import (
    HTTPResponse,
    ReceiverPipeline,
    RequestContext,
    SettlementHandler,
    text_response,
)

logger = logging.getLogger(__name__)

READ_AHEAD_BYTES = 1 << 20

Scope = MutableMapping[str, Any]
Message = MutableMapping[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]


# ---------------------------------------------------------------------------
# ASGI helpers
# ---------------------------------------------------------------------------

def _decode_headers(raw: list[tuple[bytes, bytes]]) -> dict[str, str]:
    """ASGI header pairs to a lower-cased dict; repeats are comma-joined."""
    headers: dict[str, str] = {}
    for name_bytes, value_bytes in raw:
        name = name_bytes.decode("latin-1").lower()
        value = value_bytes.decode("latin-1")
        headers[name] = f"{headers[name]}, {value}" if name in headers else value
    return headers


class _RequestReader:
    """Sole consumer of ASGI ``receive`` for one request.

    :meth:`pump` runs for as long as the pipeline does.  It reads body
    chunks ahead of the consumer, at most *read_ahead* unread bytes, and
    returns when the client disconnects.  A handler that never touches
    the body can therefore still be cancelled.  :meth:`chunks` yields the
    body and raises :class:`ClientDisconnected` if the client left before
    the body was complete.
    """

    def __init__(self, receive: Receive, read_ahead: int = READ_AHEAD_BYTES) -> None:
        self._receive = receive
        self._read_ahead = read_ahead
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._unread = 0
        self._room = asyncio.Event()
        self._room.set()

    async def pump(self) -> None:
        body_done = False
        while True:
            if not body_done:
                await self._room.wait()
            message = await self._receive()
            if message["type"] == "http.disconnect":
                self._queue.put_nowait(None)
                return
            if message["type"] != "http.request" or body_done:
                continue
            chunk = message.get("body", b"")
            if chunk:
                self._unread += len(chunk)
                if self._unread >= self._read_ahead:
                    self._room.clear()
                self._queue.put_nowait(chunk)
            if not message.get("more_body", False):
                body_done = True
                self._queue.put_nowait(b"")

    async def chunks(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                raise ClientDisconnected()
            if not chunk:
                return
            self._unread -= len(chunk)
            if self._unread < self._read_ahead:
                self._room.set()
            yield chunk


async def _send_response(send: Send, response: HTTPResponse) -> None:
    headers = [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in response.headers.items()
    ]
    body = response.body
    if isinstance(body, bytes):
        headers.append((b"content-length", str(len(body)).encode("latin-1")))
        await send({"type": "http.response.start", "status": response.status, "headers": headers})
        await send({"type": "http.response.body", "body": body, "more_body": False})
        return

    await send({"type": "http.response.start", "status": response.status, "headers": headers})
    async for chunk in body:
        await send({"type": "http.response.body", "body": chunk, "more_body": True})
    await send({"type": "http.response.body", "body": b"", "more_body": False})


async def _lifespan(receive: Receive, send: Send) -> None:
    while True:
        message = await receive()
        if message["type"] == "lifespan.startup":
            await send({"type": "lifespan.startup.complete"})
        elif message["type"] == "lifespan.shutdown":
            await send({"type": "lifespan.shutdown.complete"})
            return


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

class ReceiverApp:
    """ASGI application wrapping a :class:`ReceiverPipeline`.

    Parameters
    ----------
    pipeline:
        The pipeline every accepted request runs through.
    path:
        Path to accept transfers on, or ``"*"`` for every path.
    read_ahead:
        Most unread request body bytes buffered per request.
    """

    def __init__(
        self,
        pipeline: ReceiverPipeline,
        *,
        path: str = "*",
        read_ahead: int = READ_AHEAD_BYTES,
    ) -> None:
        if read_ahead < 1:
            raise ValueError("read_ahead must be positive")
        self._pipeline = pipeline
        self._read_ahead = read_ahead
        self._path = path if path == "*" else (path.rstrip("/") or "/")

    @property
    def pipeline(self) -> ReceiverPipeline:
        return self._pipeline

    def _matches(self, path: str) -> bool:
        return self._path == "*" or (path.rstrip("/") or "/") == self._path

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await _lifespan(receive, send)
            return
        if scope["type"] != "http":
            raise ValueError(f"Unsupported ASGI scope type: {scope['type']}")

        path = scope.get("path", "/")
        method = scope.get("method", "GET").upper()
        if not self._matches(path):
            await _send_response(send, text_response(404, "Not Found"))
            return
        if method != "POST":
            await _send_response(
                send, text_response(405, "Method Not Allowed", {"Allow": "POST"})
            )
            return

        reader = _RequestReader(receive, self._read_ahead)
        ctx = RequestContext(
            method=method,
            path=path,
            headers=_decode_headers(scope.get("headers", [])),
            body=Body(reader.chunks()),
        )

        try:
            response = await self._process(ctx, reader)
        except ClientDisconnected:
            logger.info("client disconnected before the response was sent")
            return
        await _send_response(send, response)

    async def _process(self, ctx: RequestContext, reader: _RequestReader) -> HTTPResponse:
        """Run the pipeline, cancelling it if the client disconnects."""
        pump = asyncio.ensure_future(reader.pump())
        work = asyncio.ensure_future(self._pipeline.process(ctx))
        try:
            await asyncio.wait({work, pump}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            pump.cancel()
        if work.done():
            return work.result()

        work.cancel()
        try:
            await work
        except asyncio.CancelledError:
            pass
        # re-raises a failure of receive itself
        pump.result()
        raise ClientDisconnected()


def create_receiver(
    handler: SettlementHandler,
    *,
    config: ReceiverConfig | None = None,
    evaluator: CaveatEvaluator = evaluate_caveat,
    clock: Callable[[], datetime] = utcnow,
    **options: Any,
) -> ReceiverApp:
    """Create an ASGI receiver application.

    Parameters
    ----------
    handler:
        Settlement handler called with ``(auth, transfer)``.
    config:
        A validated :class:`ReceiverConfig`.  When omitted, *options*
        (``secret``, ``path``, ``stream_data``, ``body_size_limit``) are
        used to build one.
    evaluator:
        Caveat evaluator for token verification.
    clock:
        Source of the current time for caveat evaluation.

    Returns
    -------
    ReceiverApp
        The ASGI application.

    Raises
    ------
    TypeError
        If both *config* and receiver *options* are given.
    pydantic.ValidationError
        If *options* do not form a valid :class:`ReceiverConfig`.
    """
    if config is None:
        config = ReceiverConfig(**options)
    elif options:
        raise TypeError("pass either config or receiver options, not both")
    pipeline = ReceiverPipeline.from_config(config, handler, evaluator=evaluator, clock=clock)
    return ReceiverApp(pipeline, path=config.path)
