"""
Byte and hashing helpers shared across the registry.

Everything that gets hashed or signed goes through canonicalize() first,
so two processes always agree on the digest of the same object.
"""

import base64
import binascii
import hashlib
import hmac
import json
import secrets
import time
from typing import Any, Union

BytesLike = Union[bytes, str]


def _as_bytes(data: BytesLike) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else data


def canonicalize(obj: Any) -> bytes:
    """Sorted keys, no whitespace, UTF-8."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def sha256_bytes(data: BytesLike) -> bytes:
    return hashlib.sha256(_as_bytes(data)).digest()


def sha256_hex(data: BytesLike) -> str:
    return sha256_bytes(data).hex()


def now_epoch() -> int:
    """Wall clock, whole seconds."""
    return int(time.time())


def b64e(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def b64d(text: str) -> bytes:
    """Strict standard-alphabet decode; raises binascii.Error on junk."""
    return base64.b64decode(text.encode("ascii"), validate=True)


def hex_to_bytes(text: str) -> bytes:
    return binascii.unhexlify(text.strip().lower())


def constant_time_compare(a: BytesLike, b: BytesLike) -> bool:
    return hmac.compare_digest(_as_bytes(a), _as_bytes(b))


def generate_nonce(num_bytes: int = 16) -> str:
    return secrets.token_hex(num_bytes)


def mask_sensitive(value: str, visible_chars: int = 4) -> str:
    """Replace all but the trailing ``visible_chars`` characters with '*'."""
    hidden = max(len(value) - visible_chars, 0)
    if hidden == 0:
        return "*" * len(value)
    return "*" * hidden + value[hidden:]
