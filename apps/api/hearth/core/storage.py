"""
Filesystem root for the fs record store.

Defaults:
- STORAGE_ROOT: ./data/storage  (relative paths resolve against the repo root)
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict


def _repo_root() -> Path:
    # apps/api/hearth/core/storage.py -> repo root = parents[4]
    return Path(__file__).resolve().parents[4]


def get_storage_root() -> Path:
    p = Path(os.getenv("STORAGE_ROOT", "./data/storage"))
    return p if p.is_absolute() else (_repo_root() / p).resolve()


def ensure_storage_root() -> Path:
    root = get_storage_root()
    root.mkdir(parents=True, exist_ok=True)
    return root


def storage_health() -> Dict[str, Any]:
    from hearth.core.records import RECORD_KINDS

    root = get_storage_root()
    try:
        ensure_storage_root()
        probe = root / ".probe_write"
        probe.write_text("ok", encoding="utf-8")
        probe.unlink(missing_ok=True)
        counts = {kind: len(list((root / f"{kind}s").glob("*.json"))) for kind in RECORD_KINDS}
        return {"status": "ok", "kind": "local_fs", "root": root.as_posix(), "records": counts}
    except OSError as e:
        return {"status": "error", "kind": "local_fs", "root": root.as_posix(), "error": str(e)}
