"""ILP3 sender -- posts a transfer and reads back the fulfillment.

* **HTTPSender** -- async HTTP client built on ``httpx``.
* **send** -- one-shot convenience wrapper.

A send is a single ``POST`` to the connector URI with the ILP headers,
an ``Authorization`` header derived from the URI's user-info and the
transfer data as body.  With ``stream_data`` the request body is pulled
from the transfer's stream as the transport writes it, and the response
body is handed back as a live :class:`Body`.
"""
from __future__ import annotations

import logging

import httpx

from ilp3.auth.resolver import AuthResolver
from ilp3.core.body import Body
from ilp3.core.config import SenderConfig
from ilp3.core.errors import RemoteError, SendTransportError
from ilp3.core.types import SendResult, Transfer
from ilp3.wire.codec import encode_transfer, merge_headers
from ilp3.wire.headers import AUTHORIZATION, ILP_FULFILLMENT

logger = logging.getLogger(__name__)


class HTTPSender:
    """HTTP client for sending ILP3 transfers.

    Parameters
    ----------
    config:
        Sender configuration (token expiry window, timeout, user agent).
    client:
        Optional shared ``httpx.AsyncClient``.  When given, the sender
        uses it for every send and never closes it.  Otherwise a client
        is created per send and closed once the response is consumed.
    resolver:
        Optional :class:`AuthResolver`; one is built from *config* when
        omitted.
    """

    def __init__(
        self,
        config: SenderConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        resolver: AuthResolver | None = None,
    ) -> None:
        self._config = config or SenderConfig()
        self._client = client
        self._resolver = resolver or AuthResolver(expiry_window_ms=self._config.token_expiry_ms)

    @property
    def config(self) -> SenderConfig:
        return self._config

    def _build_headers(self, transfer: Transfer, authorization: str | None) -> dict[str, str]:
        """ILP headers, then additional headers, then Authorization."""
        headers = merge_headers(
            {"Accept-Encoding": "identity"},
            encode_transfer(transfer, user_agent=self._config.user_agent),
        )
        if authorization:
            headers = merge_headers(headers, {AUTHORIZATION: authorization})
        return headers

    async def send(
        self,
        connector: str,
        transfer: Transfer,
        *,
        stream_data: bool = False,
    ) -> SendResult:
        """Send *transfer* to *connector*.

        Parameters
        ----------
        connector:
            Connector URI, optionally carrying a credential in its
            user-info (``http://<token>@host:port/path``).
        transfer:
            The transfer to post.
        stream_data:
            Stream the request body and return the response body as a
            live :class:`Body` instead of ``bytes``.

        Returns
        -------
        SendResult
            The ``ILP-Fulfillment`` value (``None`` if absent) and the
            response data.

        Raises
        ------
        SendTransportError
            If no HTTP response was obtained (connection, DNS, timeout).
        RemoteError
            If the response status is not 2xx.
        """
        logger.debug("sending transfer: %s", transfer.loggable())

        resolved = self._resolver.resolve(connector)
        headers = self._build_headers(transfer, resolved.authorization)
        if stream_data and transfer.data.is_streaming:
            content: bytes | Body = transfer.data
        else:
            content = await transfer.data.read()

        owned = self._client is None
        client = self._client or httpx.AsyncClient(timeout=self._config.timeout)

        async def release(response: httpx.Response | None = None) -> None:
            if response is not None:
                await response.aclose()
            if owned:
                await client.aclose()

        request = client.build_request("POST", resolved.uri, headers=headers, content=content)
        try:
            response = await client.send(request, stream=True)
        except httpx.TransportError as exc:
            logger.debug("error sending transfer to %s", resolved.uri, exc_info=True)
            await release()
            raise SendTransportError(
                f"Error sending transfer: {type(exc).__name__}",
                details={"uri": resolved.uri},
            ) from exc
        except BaseException:
            await release()
            raise

        if not response.is_success:
            await release(response)
            raise RemoteError(response.status_code, response.reason_phrase)

        fulfillment = response.headers.get(ILP_FULFILLMENT) or None

        if stream_data:
            logger.debug("got fulfillment: %s and data: [Stream]", fulfillment)
            return SendResult(
                fulfillment=fulfillment,
                data=Body(response.aiter_bytes(), on_close=lambda: release(response)),
            )

        try:
            data = await response.aread()
        except httpx.TransportError as exc:
            raise SendTransportError(
                f"Error reading response: {type(exc).__name__}",
                details={"uri": resolved.uri},
            ) from exc
        finally:
            await release(response)
        logger.debug("got fulfillment: %s and data: %s", fulfillment, Body(data).describe())
        return SendResult(fulfillment=fulfillment, data=data)


async def send(
    connector: str,
    transfer: Transfer,
    *,
    stream_data: bool = False,
    config: SenderConfig | None = None,
    client: httpx.AsyncClient | None = None,
) -> SendResult:
    """Send one transfer with a throwaway :class:`HTTPSender`."""
    sender = HTTPSender(config, client=client)
    return await sender.send(connector, transfer, stream_data=stream_data)
