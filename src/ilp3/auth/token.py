"""Caveated bearer tokens bound to a root secret by an HMAC chain.

A :class:`Token` carries an identifier (the account it was issued for)
and an ordered list of :class:`Caveat` restrictions.  Its signature is
an HMAC-SHA256 chain::

    key  = HMAC-SHA256("macaroons-key-generator", secret)
    sig0 = HMAC-SHA256(key, identifier)
    sigN = HMAC-SHA256(sig(N-1), caveat_predicate(N-1))

Anyone holding a token can append a caveat and extend the chain without
knowing the secret, but nobody can remove one: the receiver recomputes
the chain from the secret and every predicate in order.  The secret
itself never appears on the token.

Wire form
---------
Tokens are exported in the macaroon v2 binary layout (version byte
``0x02``, type/varint-length/value fields, ``0x00`` end-of-section
markers, 32-byte signature) and transported as base64.  Encoding uses the
URL-safe alphabet without padding so that a token can sit inside the
user-info part of a URI; decoding accepts either alphabet, padded or not.
Third-party caveats are read as ``UNKNOWN`` caveats on their identifier,
so they fail evaluation once the signature has been checked.
"""
from __future__ import annotations

import base64
import binascii
import enum
import hashlib
import hmac
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from ilp3.core.clock import format_timestamp
from ilp3.core.errors import MalformedToken

TIME_BEFORE_PREFIX = "time < "

_KEY_GENERATOR = b"macaroons-key-generator"
_VERSION_2 = 2
_SIGNATURE_SIZE = 32

_FIELD_EOS = 0
_FIELD_LOCATION = 1
_FIELD_IDENTIFIER = 2
_FIELD_VID = 4
_FIELD_SIGNATURE = 6


# ---------------------------------------------------------------------------
# Caveats
# ---------------------------------------------------------------------------

class CaveatKind(enum.StrEnum):
    """The closed set of caveat kinds.

    ``UNKNOWN`` holds any predicate this implementation does not
    recognise.  It is kept so the signature chain can be recomputed, and
    it never passes evaluation.
    """

    TIME_BEFORE = "time-before"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Caveat:
    """A first-party caveat as a tagged variant.

    For ``TIME_BEFORE`` the payload is the ISO-8601 bound; for
    ``UNKNOWN`` it is the raw predicate text.
    """

    kind: CaveatKind
    payload: str

    @classmethod
    def time_before(cls, bound: datetime) -> Caveat:
        """Caveat that is satisfied only while ``now < bound``."""
        return cls(CaveatKind.TIME_BEFORE, format_timestamp(bound))

    @classmethod
    def parse(cls, predicate: str) -> Caveat:
        """Classify a wire predicate.  Never fails."""
        if predicate.startswith(TIME_BEFORE_PREFIX):
            return cls(CaveatKind.TIME_BEFORE, predicate[len(TIME_BEFORE_PREFIX):])
        return cls(CaveatKind.UNKNOWN, predicate)

    @property
    def predicate(self) -> str:
        """The exact text that is signed and transmitted."""
        if self.kind is CaveatKind.TIME_BEFORE:
            return f"{TIME_BEFORE_PREFIX}{self.payload}"
        return self.payload


# ---------------------------------------------------------------------------
# Token
# ---------------------------------------------------------------------------

class Token:
    """An immutable caveated bearer token.

    Parameters
    ----------
    identifier:
        The account or principal the token was issued for.
    signature:
        The 32-byte HMAC chain value.
    caveats:
        Restrictions in append order.
    location:
        Optional location hint; not covered by the signature.
    """

    __slots__ = ("_caveats", "_identifier", "_location", "_signature")

    def __init__(
        self,
        identifier: str,
        signature: bytes,
        caveats: Sequence[Caveat] = (),
        *,
        location: str = "",
    ) -> None:
        if len(signature) != _SIGNATURE_SIZE:
            raise ValueError(f"signature must be {_SIGNATURE_SIZE} bytes")
        self._identifier = identifier
        self._signature = bytes(signature)
        self._caveats: tuple[Caveat, ...] = tuple(caveats)
        self._location = location

    @classmethod
    def mint(cls, identifier: str, secret: bytes, *, location: str = "") -> Token:
        """Issue a new token for *identifier* with no caveats."""
        signature = _chain(derive_key(secret), identifier, ())
        return cls(identifier, signature, location=location)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def identifier(self) -> str:
        return self._identifier

    @property
    def caveats(self) -> tuple[Caveat, ...]:
        return self._caveats

    @property
    def signature(self) -> bytes:
        return self._signature

    @property
    def location(self) -> str:
        return self._location

    # ------------------------------------------------------------------
    # Attenuation and verification
    # ------------------------------------------------------------------

    def with_caveat(self, caveat: Caveat) -> Token:
        """Return a derived token restricted further by *caveat*.

        The receiver of this call is left unchanged.
        """
        signature = _hmac(self._signature, caveat.predicate.encode("utf-8"))
        return Token(
            self._identifier,
            signature,
            (*self._caveats, caveat),
            location=self._location,
        )

    def signature_matches(self, secret: bytes) -> bool:
        """Recompute the HMAC chain from *secret* and compare in constant time."""
        expected = _chain(derive_key(secret), self._identifier, self._caveats)
        return hmac.compare_digest(expected, self._signature)

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_bytes(self) -> bytes:
        """Export in the v2 binary layout."""
        out = bytearray([_VERSION_2])
        if self._location:
            _put_field(out, _FIELD_LOCATION, self._location.encode("utf-8"))
        _put_field(out, _FIELD_IDENTIFIER, self._identifier.encode("utf-8"))
        out.append(_FIELD_EOS)
        for caveat in self._caveats:
            _put_field(out, _FIELD_IDENTIFIER, caveat.predicate.encode("utf-8"))
            out.append(_FIELD_EOS)
        out.append(_FIELD_EOS)
        _put_field(out, _FIELD_SIGNATURE, self._signature)
        return bytes(out)

    def encode(self) -> str:
        """Base64url (unpadded) form suitable for headers and URIs."""
        return base64.urlsafe_b64encode(self.to_bytes()).rstrip(b"=").decode("ascii")

    @classmethod
    def from_bytes(cls, data: bytes) -> Token:
        """Import a token from its v2 binary layout.

        Raises
        ------
        MalformedToken
            If *data* is not a well-formed v2 token.
        """
        return _parse(data)

    @classmethod
    def decode(cls, value: str) -> Token:
        """Import a token from its base64 form (either alphabet).

        Raises
        ------
        MalformedToken
            If *value* is not valid base64 or not a well-formed token.
        """
        text = value.strip()
        if not text:
            raise MalformedToken(details={"reason": "empty"})
        text = text.replace("-", "+").replace("_", "/")
        text += "=" * (-len(text) % 4)
        try:
            raw = base64.b64decode(text, validate=True)
        except binascii.Error as exc:
            raise MalformedToken(details={"reason": "not base64"}) from exc
        return _parse(raw)

    # ------------------------------------------------------------------
    # Dunder
    # ------------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Token):
            return (
                self._identifier == other._identifier
                and self._caveats == other._caveats
                and hmac.compare_digest(self._signature, other._signature)
            )
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self._identifier, self._caveats, self._signature))

    def __repr__(self) -> str:
        return f"Token(identifier={self._identifier!r}, caveats={len(self._caveats)})"


# ---------------------------------------------------------------------------
# HMAC chain
# ---------------------------------------------------------------------------

def derive_key(secret: bytes) -> bytes:
    """Derive the chain key from a root secret."""
    return _hmac(_KEY_GENERATOR, secret)


def _hmac(key: bytes, message: bytes) -> bytes:
    return hmac.new(key, message, hashlib.sha256).digest()


def _chain(key: bytes, identifier: str, caveats: Sequence[Caveat]) -> bytes:
    signature = _hmac(key, identifier.encode("utf-8"))
    for caveat in caveats:
        signature = _hmac(signature, caveat.predicate.encode("utf-8"))
    return signature


# ---------------------------------------------------------------------------
# v2 binary layout
# ---------------------------------------------------------------------------

def _put_varint(out: bytearray, value: int) -> None:
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)


def _put_field(out: bytearray, field_type: int, data: bytes) -> None:
    out.append(field_type)
    _put_varint(out, len(data))
    out.extend(data)


class _Reader:
    """Cursor over a v2 token buffer.  Every short read is a malformed token."""

    __slots__ = ("_data", "_pos")

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    @property
    def exhausted(self) -> bool:
        return self._pos >= len(self._data)

    def byte(self) -> int:
        if self.exhausted:
            raise MalformedToken(details={"reason": "truncated"})
        value = self._data[self._pos]
        self._pos += 1
        return value

    def varint(self) -> int:
        value = 0
        shift = 0
        while True:
            byte = self.byte()
            value |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return value
            shift += 7
            if shift > 63:
                raise MalformedToken(details={"reason": "varint overflow"})

    def field(self) -> tuple[int, bytes]:
        """Read one field; the end-of-section marker yields ``(0, b"")``."""
        field_type = self.byte()
        if field_type == _FIELD_EOS:
            return _FIELD_EOS, b""
        length = self.varint()
        end = self._pos + length
        if end > len(self._data):
            raise MalformedToken(details={"reason": "truncated"})
        value = self._data[self._pos:end]
        self._pos = end
        return field_type, value


def _text(value: bytes) -> str:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedToken(details={"reason": "non-utf8 field"}) from exc


def _expect(actual: int, expected: int) -> None:
    if actual != expected:
        raise MalformedToken(
            details={"reason": "unexpected field", "field": actual, "expected": expected}
        )


def _parse(data: bytes) -> Token:
    reader = _Reader(data)
    version = reader.byte()
    if version != _VERSION_2:
        raise MalformedToken(details={"reason": "unsupported version", "version": version})

    location = ""
    field_type, value = reader.field()
    if field_type == _FIELD_LOCATION:
        location = _text(value)
        field_type, value = reader.field()
    _expect(field_type, _FIELD_IDENTIFIER)
    identifier = _text(value)
    _expect(reader.field()[0], _FIELD_EOS)

    caveats: list[Caveat] = []
    while True:
        field_type, value = reader.field()
        if field_type == _FIELD_EOS:
            break
        if field_type == _FIELD_LOCATION:
            field_type, value = reader.field()
        _expect(field_type, _FIELD_IDENTIFIER)
        predicate = _text(value)
        field_type, _ = reader.field()
        if field_type == _FIELD_VID:
            # third-party: never dischargeable here
            _expect(reader.field()[0], _FIELD_EOS)
            caveats.append(Caveat(CaveatKind.UNKNOWN, predicate))
            continue
        _expect(field_type, _FIELD_EOS)
        caveats.append(Caveat.parse(predicate))

    field_type, signature = reader.field()
    _expect(field_type, _FIELD_SIGNATURE)
    if len(signature) != _SIGNATURE_SIZE or not reader.exhausted:
        raise MalformedToken(details={"reason": "bad signature field"})
    return Token(identifier, signature, caveats, location=location)
