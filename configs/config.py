import os
from typing import Dict, Any

from dotenv import load_dotenv

load_dotenv()


class Config:
	"""Configuration for the changelog engine."""

	# AWS Bedrock Configuration
	AWS_REGION = os.getenv("AWS_REGION", "us-east-1")
	BEDROCK_MODEL_ID = os.getenv("BEDROCK_MODEL_ID", "anthropic.claude-3-sonnet-20240229-v1:0")
	BEDROCK_MAX_OUTPUT_TOKENS = int(os.getenv("BEDROCK_MAX_OUTPUT_TOKENS", "400"))

	# VCS providers
	GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip('/')
	GITHUB_TOKEN = os.getenv("GITHUB_TOKEN") or os.getenv("GITHUB_PAT")
	GITLAB_API_URL = os.getenv("GITLAB_API_URL", "https://gitlab.com/api/v4").rstrip('/')
	GITLAB_TOKEN = os.getenv("GITLAB_TOKEN")
	HTTP_TIMEOUT_S = int(os.getenv("HTTP_TIMEOUT_S", "30"))
	COMMITS_PER_PAGE = int(os.getenv("COMMITS_PER_PAGE", "30"))
	COMMITS_MAX_PAGES = int(os.getenv("COMMITS_MAX_PAGES", "10"))
	FETCH_WORKERS = int(os.getenv("FETCH_WORKERS", "4"))

	# Canny import source
	CANNY_API_URL = os.getenv("CANNY_API_URL", "https://canny.io/api/v1").rstrip('/')
	CANNY_API_KEY = os.getenv("CANNY_API_KEY", "")
	CANNY_MAX_ENTRIES = int(os.getenv("CANNY_MAX_ENTRIES", "500"))

	# AI enrichment
	ENRICH_WORKERS = int(os.getenv("ENRICH_WORKERS", "4"))
	ENRICH_TIMEOUT_S = float(os.getenv("ENRICH_TIMEOUT_S", "20"))
	ENRICH_TEMPERATURE = float(os.getenv("ENRICH_TEMPERATURE", "0.3"))

	# Filtering
	# Unknown commit types are dropped unless this is set
	INCLUDE_UNKNOWN_TYPES = bool(int(os.getenv("INCLUDE_UNKNOWN_TYPES", "0")))

	# Import / reconciliation
	IMPORT_SEQUENCE_UNIT_S = int(os.getenv("IMPORT_SEQUENCE_UNIT_S", "60"))
	ENTRY_STORE_PATH = os.getenv("ENTRY_STORE_PATH", ".cache/changelog/entries.json")
	AUDIT_ROOT = os.getenv("AUDIT_ROOT", ".cache/changelog/audit")
	JOB_CONCURRENCY = int(os.getenv("JOB_CONCURRENCY", "5"))

	# Guardrails & observability
	CB_FAILURE_THRESHOLD = int(os.getenv("CB_FAILURE_THRESHOLD", "5"))
	CB_RECOVERY_TIME_S = int(os.getenv("CB_RECOVERY_TIME_S", "120"))
	CB_HALF_OPEN_MAX_CALLS = int(os.getenv("CB_HALF_OPEN_MAX_CALLS", "1"))
	CB_ROOT = os.getenv("CB_ROOT", ".cache/changelog/cb")

	METRICS_ROOT = os.getenv("METRICS_ROOT", ".cache/changelog/metrics")
	METRICS_ENABLED = bool(int(os.getenv("METRICS_ENABLED", "1")))

	@classmethod
	def get_cb_config(cls) -> Dict[str, Any]:
		return {
			"failure_threshold": cls.CB_FAILURE_THRESHOLD,
			"recovery_time_s": cls.CB_RECOVERY_TIME_S,
			"half_open_max_calls": cls.CB_HALF_OPEN_MAX_CALLS,
			"state_root": cls.CB_ROOT,
		}

	@classmethod
	def get_bedrock_config(cls) -> Dict[str, Any]:
		"""Get Bedrock configuration."""
		return {
			"region_name": cls.AWS_REGION,
			"model_id": cls.BEDROCK_MODEL_ID,
			"max_output_tokens": cls.BEDROCK_MAX_OUTPUT_TOKENS,
		}

	@classmethod
	def get_github_config(cls) -> Dict[str, Any]:
		"""Get GitHub REST configuration."""
		return {
			"base_url": cls.GITHUB_API_URL,
			"token": cls.GITHUB_TOKEN,
			"timeout_s": cls.HTTP_TIMEOUT_S,
		}

	@classmethod
	def get_gitlab_config(cls) -> Dict[str, Any]:
		"""Get GitLab REST configuration."""
		return {
			"base_url": cls.GITLAB_API_URL,
			"token": cls.GITLAB_TOKEN,
			"timeout_s": cls.HTTP_TIMEOUT_S,
		}

	@classmethod
	def get_fetch_config(cls) -> Dict[str, Any]:
		"""Get commit paging configuration.

		Returns:
			Mapping with page size, page cap, and concurrent page workers.
		"""
		return {
			"per_page": cls.COMMITS_PER_PAGE,
			"max_pages": cls.COMMITS_MAX_PAGES,
			"workers": cls.FETCH_WORKERS,
		}

	@classmethod
	def get_canny_config(cls) -> Dict[str, Any]:
		return {
			"base_url": cls.CANNY_API_URL,
			"api_key": cls.CANNY_API_KEY,
			"max_entries": cls.CANNY_MAX_ENTRIES,
			"timeout_s": cls.HTTP_TIMEOUT_S,
		}
