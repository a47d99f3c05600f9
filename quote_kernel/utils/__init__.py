"""Utility modules for the approval kernel."""

from quote_kernel.utils.hashing import canonicalize_json, hash_payload
from quote_kernel.utils.keyed_lock import KeyedLock

__all__ = [
    "KeyedLock",
    "canonicalize_json",
    "hash_payload",
]
