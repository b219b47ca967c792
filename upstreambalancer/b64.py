"""Base64 encoding and decoding helpers."""

from __future__ import annotations

import base64
import binascii


def base64_encode(data: bytes | bytearray | memoryview) -> str:
    """Encode binary data as padded standard base64 text."""
    return base64.b64encode(bytes(data)).decode("ascii")


def base64_encode_string(text: str) -> str:
    """Encode the UTF-8 bytes of ``text`` as base64 text."""
    return base64_encode(text.encode("utf-8"))


def base64_decode(text: str | bytes) -> bytes:
    """Decode base64 text, with or without trailing padding.

    Raises ValueError for characters outside the base64 alphabet or a
    length that cannot be base64.
    """
    if isinstance(text, (bytes, bytearray)):
        raw = bytes(text)
    else:
        try:
            raw = text.encode("ascii")
        except UnicodeEncodeError as exc:
            raise ValueError("base64 text contains non-ASCII characters") from exc
    body = raw.rstrip(b"=")
    if len(body) % 4 == 1:
        raise ValueError("invalid base64 length")
    padded = body + b"=" * (-len(body) % 4)
    try:
        return base64.b64decode(padded, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"invalid base64 data: {exc}") from exc


def base64_decode_string(text: str | bytes) -> str:
    """Decode base64 text to a UTF-8 string."""
    return base64_decode(text).decode("utf-8")