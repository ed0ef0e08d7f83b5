"""Summary: Encoding utilities for provider credentials kept in the local store.

Importance: Keeps access and refresh tokens obscured at rest in SQLite.
Alternatives: Use the OS keychain or a strong encryption library.
"""

from __future__ import annotations

import base64
import hashlib


ENCODED_PREFIX = "tdk1:"


class TokenCodec:
    """Summary: Reversible keystream encoder for credential values.

    Importance: Values carry a prefix so plaintext written by older builds still decodes.
    Alternatives: Use a proper encryption library with key management.
    """

    def __init__(self, secret: str) -> None:
        """Summary: Initialize with a secret used to derive a keystream.

        Importance: Keeps token encoding consistent per installation.
        Alternatives: Generate per-token secrets and store them securely.
        """

        self._secret = (secret or "taskdeck").encode("utf-8")

    def encode(self, plaintext: str) -> str:
        """Summary: Encode a token into a prefixed, obfuscated string."""

        raw = plaintext.encode("utf-8")
        key = _keystream(self._secret, len(raw))
        obfuscated = bytes([b ^ k for b, k in zip(raw, key)])
        return ENCODED_PREFIX + base64.urlsafe_b64encode(obfuscated).decode("utf-8")

    def decode(self, payload: str) -> str:
        """Summary: Decode a stored token, passing through values without the prefix.

        Importance: Tolerates tokens that were written before encoding was enabled.
        Alternatives: Require a migration of existing stores.
        """

        if not is_encoded(payload):
            return payload
        raw = base64.urlsafe_b64decode(payload[len(ENCODED_PREFIX):].encode("utf-8"))
        key = _keystream(self._secret, len(raw))
        plaintext = bytes([b ^ k for b, k in zip(raw, key)])
        return plaintext.decode("utf-8")


def is_encoded(value: str) -> bool:
    return value.startswith(ENCODED_PREFIX)


def _keystream(secret: bytes, length: int) -> bytes:
    """Summary: Derive a deterministic keystream from a secret."""

    output = b""
    counter = 0
    while len(output) < length:
        counter_bytes = counter.to_bytes(4, "big")
        output += hashlib.sha256(secret + counter_bytes).digest()
        counter += 1
    return output[:length]
