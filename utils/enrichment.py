#!/usr/bin/env python3
"""AI wording enrichment for changelog entries.

Enrichment is a soft dependency: the synthesizer treats any failure here as
if enrichment were disabled for that entry.
"""

from __future__ import annotations

import logging
import re
from typing import Optional, Protocol

from pydantic import BaseModel, Field

from clients.bedrock_client import BedrockClient, BedrockError
from configs.config import Config
from utils.changelog_models import ChangelogEntry
from utils.circuit_breaker import CBConfig, CircuitBreaker
from utils.errors import EnrichmentError
from utils.metrics import incr

logger = logging.getLogger(__name__)


class EnrichmentResult(BaseModel):
	text: str = Field(..., min_length=1)
	tokens_used: int = Field(0, ge=0)


class Enricher(Protocol):
	def enrich(self, entry: ChangelogEntry, temperature: float) -> EnrichmentResult:
		...


PROMPT_TEMPLATE = """You are writing a changelog for end users.
Rewrite the change below as one clear sentence, then explain its user impact and a short technical note.
Answer with exactly three lines:
Description: <sentence>
Impact: <user impact>
Technical: <technical detail>

Category: {category}
Commit message: {description}
Files: {files}
"""

_LABEL_RE = re.compile(r"^\s*(description|impact|technical)\s*:\s*(.*)$", re.IGNORECASE)


def build_prompt(entry: ChangelogEntry) -> str:
	files = ", ".join(entry.related_files[:10]) or "n/a"
	return PROMPT_TEMPLATE.format(category=entry.category.value, description=entry.description, files=files)


def apply_enrichment(entry: ChangelogEntry, text: str) -> ChangelogEntry:
	"""Merge labeled completion text into an entry.

	Unlabeled text replaces the description; empty fields keep the original.
	"""
	fields = {}
	for line in (text or "").splitlines():
		match = _LABEL_RE.match(line)
		if match and match.group(2).strip():
			fields[match.group(1).lower()] = match.group(2).strip()
	if not fields:
		first = next((ln.strip() for ln in (text or "").splitlines() if ln.strip()), "")
		return entry.model_copy(update={"description": first}) if first else entry
	update = {}
	if fields.get("description"):
		update["description"] = fields["description"]
	if fields.get("impact"):
		update["impact"] = fields["impact"]
	if fields.get("technical"):
		update["technical_detail"] = fields["technical"]
	return entry.model_copy(update=update)


class BedrockEnricher:
	"""Enricher backed by Bedrock and guarded by a circuit breaker."""

	def __init__(self, client: Optional[BedrockClient] = None, breaker: Optional[CircuitBreaker] = None):
		self.client = client or BedrockClient()
		self.breaker = breaker or CircuitBreaker("bedrock", CBConfig(**Config.get_cb_config()))

	def enrich(self, entry: ChangelogEntry, temperature: float) -> EnrichmentResult:
		if not self.breaker.allow():
			incr("enrich.cb_open")
			raise EnrichmentError("Bedrock circuit open", code="CB_OPEN")
		try:
			text, tokens = self.client.complete(build_prompt(entry), temperature=temperature)
		except BedrockError as e:
			self.breaker.record_failure()
			raise EnrichmentError(str(e), code=e.code) from e
		self.breaker.record_success()
		return EnrichmentResult(text=text, tokens_used=tokens)
