from __future__ import annotations

import os
import re
import time
from datetime import datetime, timezone
from typing import List

_CROCKFORD32 = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"

# ids double as file names in the fs record store
_RECORD_ID_RE = re.compile(r"^[A-Za-z0-9_.\-]{1,128}$")


def _encode_crockford(value: int, length: int) -> str:
    chars: List[str] = []
    for _ in range(length):
        chars.append(_CROCKFORD32[value & 31])
        value >>= 5
    return "".join(reversed(chars))


def new_ulid() -> str:
    # 48-bit time (ms) + 80-bit randomness
    ms = int(time.time() * 1000) & ((1 << 48) - 1)
    rnd = int.from_bytes(os.urandom(10), "big")
    v = (ms << 80) | rnd
    return _encode_crockford(v, 26)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def is_valid_record_id(record_id: object) -> bool:
    if not isinstance(record_id, str):
        return False
    if record_id in (".", ".."):
        return False
    return _RECORD_ID_RE.match(record_id) is not None
