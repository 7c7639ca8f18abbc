"""Fixed header names and wire-level defaults.

Header names are written in their canonical casing.  HTTP header lookup
is case-insensitive, so receivers compare against the lower-cased forms.
"""
from __future__ import annotations

# ---------------------------------------------------------------------------
# Request headers
# ---------------------------------------------------------------------------

ILP_AMOUNT: str = "ILP-Amount"
ILP_EXPIRY: str = "ILP-Expiry"
ILP_CONDITION: str = "ILP-Condition"
ILP_DESTINATION: str = "ILP-Destination"

TRANSFER_HEADERS: tuple[str, ...] = (
    ILP_AMOUNT,
    ILP_EXPIRY,
    ILP_CONDITION,
    ILP_DESTINATION,
)
"""The four headers every transfer carries, in emission order."""

AUTHORIZATION: str = "Authorization"
BEARER_SCHEME: str = "Bearer"

# ---------------------------------------------------------------------------
# Response headers
# ---------------------------------------------------------------------------

ILP_FULFILLMENT: str = "ILP-Fulfillment"

# ---------------------------------------------------------------------------
# Both directions
# ---------------------------------------------------------------------------

CONTENT_TYPE: str = "Content-Type"
OCTET_STREAM: str = "application/octet-stream"
"""Transfer data and fulfillment data are opaque bytes."""
