"""
Stable percentage bucketing.

Maps (seed, identifier) to a reproducible point in [0, 100):

    SHA-256("{identifier}\\n{seed}")  ->  first 4 bytes, little-endian uint32
                                      ->  value / 2**32 * 100

Pure function: same inputs give the same bucket across processes and
platforms, and a different seed decorrelates the bucket of one identifier.
"""

import hashlib

_SCALE = 2 ** 32


def context_id(seed: str, identifier: str) -> str:
    return f"{identifier}\n{seed}"


def bucket(seed: str, identifier: str) -> float:
    """
    Bucket an identifier under a seed.

    Usage:
        bucket("Beta", "abc")  # always the same float in [0, 100)
    """
    digest = hashlib.sha256(context_id(seed, identifier).encode("utf-8")).digest()
    marker = int.from_bytes(digest[:4], "little")
    return marker / _SCALE * 100


def is_in_percentage(seed: str, identifier: str, percentage: float) -> bool:
    """True when the identifier's bucket falls below `percentage`."""
    return bucket(seed, identifier) < percentage
