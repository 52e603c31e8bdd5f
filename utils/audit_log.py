#!/usr/bin/env python3
"""Append-only audit logs for import batches and scheduled publishes."""

from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from configs.config import Config


def _audit_path(project_id: str, root: Optional[str]) -> Path:
    base = Path(root or Config.AUDIT_ROOT)
    return base / f"{project_id.replace('/', '#')}.audit.log"


def audit_import_batch(
    project_id: str,
    batch_key: str,
    action: str,
    result: str,
    details: Dict[str, Any],
    root: Optional[str] = None,
) -> None:
    """Append a single JSON line with safe metadata.

    Fields: ts, project, batch, action, result, details
    """
    path = _audit_path(project_id, root)
    path.parent.mkdir(parents=True, exist_ok=True)
    record = {
        "ts": int(time.time()),
        "project": project_id,
        "batch": batch_key,
        "action": action,
        "result": result,
        "details": details or {},
    }
    line = json.dumps(record, separators=(",", ":"), default=str) + "\n"
    with open(path, "a", encoding="utf-8") as f:
        f.write(line)
        f.flush()
        os.fsync(f.fileno())


def read_audit(project_id: str, root: Optional[str] = None) -> List[Dict[str, Any]]:
    path = _audit_path(project_id, root)
    if not path.exists():
        return []
    with open(path, "r", encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]
