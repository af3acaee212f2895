"""Utility functions for the settlement kernel."""

from settlement_kernel.utils.hashing import (
    canonicalize_json,
    hash_audit_event,
    hash_payload,
)

__all__ = [
    "canonicalize_json",
    "hash_audit_event",
    "hash_payload",
]
