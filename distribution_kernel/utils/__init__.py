"""Utility functions for the distribution kernel."""

from distribution_kernel.utils.hashing import (
    canonicalize_json,
    hash_advice,
    hash_history_entry,
    hash_payload,
    to_json_safe,
)

__all__ = [
    "canonicalize_json",
    "hash_payload",
    "hash_history_entry",
    "hash_advice",
    "to_json_safe",
]
