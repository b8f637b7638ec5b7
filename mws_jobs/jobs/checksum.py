"""
Checksum verification for downloaded content.

The marketplace sends an MD5 digest with every downloaded report or
processing report, base64-encoded in the Content-MD5 header. Hex digests are
accepted too and compared case-insensitively.

A missing or empty expected hash fails verification.
"""

import base64
import hashlib
import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

_HEX_MD5 = re.compile(r"^[0-9a-fA-F]{32}$")


def compute_md5(content: bytes) -> str:
    """Base64-encoded MD5 digest, as sent in Content-MD5."""
    return base64.b64encode(hashlib.md5(content).digest()).decode("ascii")


def compute_md5_hex(content: bytes) -> str:
    """Hex MD5 digest."""
    return hashlib.md5(content).hexdigest()


def verify(content: bytes, expected_hash: Optional[str]) -> bool:
    """
    Check downloaded bytes against the remote-supplied digest.

    Args:
        content: Downloaded bytes
        expected_hash: Digest supplied by the remote service

    Returns:
        True if the digest matches, False otherwise (including no digest)
    """
    if content is None or not expected_hash or not expected_hash.strip():
        return False

    expected = expected_hash.strip()

    if _HEX_MD5.match(expected):
        return compute_md5_hex(content) == expected.lower()

    return compute_md5(content) == expected
