#!/usr/bin/env python3
from __future__ import annotations

import hashlib
import json
from typing import List

from utils.changelog_models import ImportOptions, ValidatedEntry


def batch_key(project_id: str, entries: List[ValidatedEntry], options: ImportOptions) -> str:
	if not project_id:
		raise ValueError("Missing project_id for batch key")
	payload = {
		"entries": [
			{"title": e.title, "content": e.content, "version": e.version, "tags": e.tags}
			for e in entries
		],
		"options": options.model_dump(mode="json"),
	}
	digest = hashlib.sha256(json.dumps(payload, sort_keys=True, default=str).encode("utf-8")).hexdigest()
	# Canonical format: <project_id>#<sha256[:16]>
	return f"{project_id}#{digest[:16]}"
