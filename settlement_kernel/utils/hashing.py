"""
Canonical JSON and SHA-256 digests for the audit chain and certificates.

Two payloads that mean the same thing must hash the same: keys are
sorted, separators are compact, and money is written without trailing
zeros.
"""

import hashlib
import json
from datetime import date
from decimal import Decimal
from functools import partial
from typing import Any
from uuid import UUID

GENESIS = "GENESIS"


def _canonical_value(obj: Any) -> str:
    match obj:
        case Decimal():
            # 5000.00 and 5000 are the same amount
            return str(obj.normalize())
        case date():
            return obj.isoformat()
        case UUID():
            return str(obj)
    raise TypeError(f"cannot canonicalize {type(obj).__name__}")


_dumps = partial(json.dumps, sort_keys=True, separators=(",", ":"), default=_canonical_value)


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def canonicalize_json(data: Any) -> str:
    return _dumps(data)


def hash_payload(payload: dict) -> str:
    return _sha256(_dumps(payload))


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Link hash of one audit event.

    Covers the event's identity, its payload digest and the hash of the
    event before it (``GENESIS`` for the first), so editing any earlier
    row breaks every later link.
    """
    return _sha256("|".join((entity_type, str(entity_id), action, payload_hash, prev_hash or GENESIS)))
