"""Unified body abstraction for transfer and fulfillment data.

A :class:`Body` wraps either fully materialised ``bytes`` or a live async
byte stream.  Protocol code only ever iterates or reads a body, so the
sender, the codec and the receiver share one code path for both modes:

* **Buffered** -- a finite, already-received payload.  Iterating yields
  the bytes once per iteration and may be repeated.
* **Streaming** -- chunks are pulled from the producer on demand, so the
  consumer's pace is the producer's pace.  A streaming body can be
  consumed exactly once; a second attempt raises :class:`BodyConsumed`.

Bounded reads (:meth:`Body.read` with ``limit``) stop pulling as soon as
the limit is crossed and raise :class:`PayloadTooLarge`.
"""
from __future__ import annotations

import base64
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable

from ilp3.core.errors import BodyConsumed, PayloadTooLarge

CloseCallback = Callable[[], Awaitable[None]]


class Body:
    """Transfer payload, either buffered bytes or a single-use stream.

    Parameters
    ----------
    source:
        ``bytes`` for a buffered body, or any async iterable of ``bytes``
        for a streaming one.
    on_close:
        Optional coroutine function invoked once when a streaming body is
        exhausted or explicitly closed.  Used to release the underlying
        HTTP response.
    """

    __slots__ = ("_buffer", "_closed", "_consumed", "_on_close", "_stream")

    def __init__(
        self,
        source: bytes | bytearray | memoryview | AsyncIterable[bytes] = b"",
        *,
        on_close: CloseCallback | None = None,
    ) -> None:
        if isinstance(source, (bytes, bytearray, memoryview)):
            self._buffer: bytes | None = bytes(source)
            self._stream: AsyncIterable[bytes] | None = None
        elif isinstance(source, AsyncIterable):
            self._buffer = None
            self._stream = source
        else:
            raise TypeError(
                f"Body source must be bytes or an async iterable of bytes, "
                f"not {type(source).__name__}"
            )
        self._on_close = on_close
        self._consumed = False
        self._closed = False

    @classmethod
    def coerce(cls, value: object) -> Body:
        """Return *value* as a :class:`Body`, wrapping bytes and streams."""
        if isinstance(value, Body):
            return value
        if isinstance(value, str):
            return cls(value.encode("utf-8"))
        return cls(value)  # type: ignore[arg-type]

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_streaming(self) -> bool:
        """``True`` when the body is backed by a live stream."""
        return self._stream is not None

    @property
    def buffered(self) -> bytes | None:
        """The buffered bytes, or ``None`` for a streaming body."""
        return self._buffer

    def describe(self) -> str:
        """Log-friendly rendering: base64 for buffered data, ``[Stream]`` otherwise."""
        if self._buffer is None:
            return "[Stream]"
        return base64.b64encode(self._buffer).decode("ascii")

    def __repr__(self) -> str:
        if self._buffer is None:
            return "Body([Stream])"
        return f"Body(<{len(self._buffer)} bytes>)"

    # ------------------------------------------------------------------
    # Consumption
    # ------------------------------------------------------------------

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self._stream is not None:
            if self._consumed:
                raise BodyConsumed()
            self._consumed = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        if self._stream is None:
            if self._buffer:
                yield self._buffer
            return
        try:
            async for chunk in self._stream:
                if chunk:
                    yield bytes(chunk)
        finally:
            await self.aclose()

    async def read(self, limit: int | None = None) -> bytes:
        """Read the whole body into memory.

        Parameters
        ----------
        limit:
            Maximum number of bytes accepted.  ``None`` disables the
            check.

        Raises
        ------
        PayloadTooLarge
            If the body is longer than *limit*.  A streaming body stops
            being pulled at the first chunk that crosses the limit.
        BodyConsumed
            If a streaming body was already consumed.
        """
        if self._buffer is not None:
            _check_limit(len(self._buffer), limit)
            return self._buffer

        chunks: list[bytes] = []
        size = 0
        stream = self.__aiter__()
        try:
            async for chunk in stream:
                size += len(chunk)
                _check_limit(size, limit)
                chunks.append(chunk)
        finally:
            await stream.aclose()  # type: ignore[attr-defined]
        return b"".join(chunks)

    async def aclose(self) -> None:
        """Release the producer.  Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            await self._on_close()


def _check_limit(size: int, limit: int | None) -> None:
    if limit is not None and size > limit:
        raise PayloadTooLarge(
            f"Body size exceeds maximum {limit} bytes",
            details={"size": size, "max_size": limit},
        )
