"""ILP3 wire mapping -- header names and the transfer codec.

* **Header constants** -- the fixed ``ILP-*`` names and content type
  (:mod:`~ilp3.wire.headers`).
* **Codec** -- transfer to headers and back (:mod:`~ilp3.wire.codec`).
"""
from __future__ import annotations

from ilp3.wire.codec import decode_transfer, encode_transfer, merge_headers
from ilp3.wire.headers import (
    AUTHORIZATION,
    BEARER_SCHEME,
    CONTENT_TYPE,
    ILP_AMOUNT,
    ILP_CONDITION,
    ILP_DESTINATION,
    ILP_EXPIRY,
    ILP_FULFILLMENT,
    OCTET_STREAM,
    TRANSFER_HEADERS,
)

__all__ = [
    "AUTHORIZATION",
    "BEARER_SCHEME",
    "CONTENT_TYPE",
    "ILP_AMOUNT",
    "ILP_CONDITION",
    "ILP_DESTINATION",
    "ILP_EXPIRY",
    "ILP_FULFILLMENT",
    "OCTET_STREAM",
    "TRANSFER_HEADERS",
    "decode_transfer",
    "encode_transfer",
    "merge_headers",
]
