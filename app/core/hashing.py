from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping


def canonical_dumps(obj: Mapping[str, Any]) -> str:
    # sorted keys, no whitespace; UUIDs, Decimals and datetimes go through str()
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def payload_digest(obj: Mapping[str, Any]) -> str:
    """SHA-256 hex of the canonical JSON form. Key order never changes the digest."""
    return hashlib.sha256(canonical_dumps(obj).encode("utf-8")).hexdigest()
