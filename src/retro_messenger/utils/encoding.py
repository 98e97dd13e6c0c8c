"""Base64 helpers used for keys, wrapped keys and envelopes."""

from __future__ import annotations

import base64
import binascii


def b64e(data: bytes) -> str:
    """Encode bytes as standard, padded base64 text."""
    return base64.b64encode(data).decode("ascii")


def b64d(data: str) -> bytes:
    """Decode standard base64 text, rejecting non-alphabet characters.

    Raises:
        ValueError: If ``data`` is not valid base64
    """
    if not isinstance(data, str):
        raise ValueError("Base64 input must be a string")
    try:
        return base64.b64decode(data.strip(), validate=True)
    except (binascii.Error, ValueError) as err:
        raise ValueError(f"Invalid base64 encoding: {err}") from err
