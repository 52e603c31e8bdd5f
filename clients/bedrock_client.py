#!/usr/bin/env python3
from __future__ import annotations

import json
import logging
import math
from typing import Any, Dict, Optional, Tuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ReadTimeoutError, EndpointConnectionError, ClientError

from configs.config import Config
from utils.wrap import with_retries

logger = logging.getLogger(__name__)

_TRANSIENT = ("TIMEOUT", "NETWORK", "RATE_LIMIT")


class BedrockError(Exception):
	def __init__(self, message: str, code: str = "UNKNOWN") -> None:
		super().__init__(message)
		self.code = code


def classify_bedrock_exc(e: Exception) -> str:
	if isinstance(e, BedrockError):
		return e.code
	if isinstance(e, ReadTimeoutError):
		return "TIMEOUT"
	if isinstance(e, EndpointConnectionError):
		return "NETWORK"
	if isinstance(e, ClientError):
		err = e.response.get("Error", {}) if hasattr(e, "response") else {}
		status = err.get("Code", "") or err.get("StatusCode", "")
		low = (str(status) + " " + str(err.get("Message", ""))).lower()
		if "throttl" in low or "429" in low or "rate" in low:
			return "RATE_LIMIT"
		if "accessdenied" in low or "unauthorized" in low or "403" in low or "401" in low:
			return "UNAUTHORIZED"
	return "UNKNOWN"


class BedrockClient:
	"""Thin text-completion wrapper over the bedrock-runtime API."""

	def __init__(
		self,
		model_id: Optional[str] = None,
		timeout_s: Optional[int] = None,
		max_output_tokens: Optional[int] = None,
		runtime: Any = None,
	) -> None:
		cfg = Config.get_bedrock_config()
		self.region = cfg.get("region_name", Config.AWS_REGION)
		self.model_id = model_id or cfg.get("model_id", Config.BEDROCK_MODEL_ID)
		self.timeout_s = int(timeout_s if timeout_s is not None else Config.HTTP_TIMEOUT_S)
		self.max_output_tokens = int(max_output_tokens or cfg.get("max_output_tokens", 400))
		self._runtime = runtime or boto3.client(
			"bedrock-runtime",
			region_name=self.region,
			config=BotoConfig(read_timeout=self.timeout_s, retries={"max_attempts": 1}),
		)
		self._hard_total_cap = 100000  # combined prompt+response tokens
		self._chars_per_token = 4.0

	def _estimate_tokens(self, text: str) -> int:
		if not text:
			return 0
		return math.ceil(len(text) / self._chars_per_token)

	def _invoke(self, prompt: str, temperature: float) -> Dict[str, Any]:
		body = {
			"anthropic_version": "bedrock-2023-05-31",
			"max_tokens": self.max_output_tokens,
			"temperature": temperature,
			"messages": [
				{"role": "user", "content": [{"type": "text", "text": prompt}]}
			],
		}
		response = self._runtime.invoke_model(
			modelId=self.model_id,
			contentType="application/json",
			accept="application/json",
			body=json.dumps(body).encode("utf-8"),
		)
		payload = response.get("body")
		if hasattr(payload, "read"):
			payload = payload.read()
		if isinstance(payload, bytes):
			payload = payload.decode("utf-8", errors="ignore")
		try:
			return json.loads(payload) if isinstance(payload, str) else dict(payload or {})
		except ValueError as e:
			raise BedrockError(f"Unreadable Bedrock response: {e}", code="UNKNOWN") from e

	def complete(self, prompt: str, temperature: float = 0.1) -> Tuple[str, int]:
		"""Return (text, tokens_used) for a single-turn prompt.

		Raises:
			BedrockError: After retries are exhausted or on a non-transient failure
		"""
		if self._estimate_tokens(prompt) + self.max_output_tokens > self._hard_total_cap:
			raise BedrockError("Prompt exceeds hard token cap", code="UNKNOWN")
		try:
			data = with_retries(
				lambda: self._invoke(prompt, temperature),
				max_attempts=3,
				backoff_s=0.5,
				retry_on=_TRANSIENT,
				classify_exc=classify_bedrock_exc,
			)
		except BedrockError:
			raise
		except Exception as e:  # noqa: BLE001
			raise BedrockError(f"Bedrock error: {e}", code=classify_bedrock_exc(e)) from e

		parts = [c.get("text", "") for c in data.get("content", []) if isinstance(c, dict) and c.get("type") == "text"]
		text = "".join(parts).strip()
		if not text:
			raise BedrockError("Empty completion from Bedrock", code="EMPTY")
		usage = data.get("usage") or {}
		tokens = int(usage.get("input_tokens", 0)) + int(usage.get("output_tokens", 0))
		logger.debug(f"✓ Bedrock completion: {len(text)} chars, {tokens} tokens")
		return text, tokens
