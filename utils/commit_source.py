#!/usr/bin/env python3
"""Commit source adapter turning provider payloads into NormalizedCommit lists.

Pages are fetched concurrently in waves and reassembled in page order, so the
returned list always follows the provider's own ordering. A failure on any
page fails the whole call; no partial history is returned.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Dict, List, Optional

from configs.config import Config
from utils.commit_models import NormalizedCommit
from utils.errors import ParseAnomaly, ProviderError
from utils.metrics import Timer, incr
from utils.vcs_client import VcsClient
from utils.versioning import latest_version_tag

logger = logging.getLogger(__name__)


class CommitSourceAdapter:
    """Fetches and normalizes commits from one VCS provider client."""

    def __init__(
        self,
        client: VcsClient,
        per_page: Optional[int] = None,
        max_pages: Optional[int] = None,
        workers: Optional[int] = None,
    ):
        """Initialize the adapter.

        Args:
            client: Provider REST client (GithubClient, GitlabClient)
            per_page: Page size (defaults to Config.COMMITS_PER_PAGE)
            max_pages: Safety limit on pages per call (defaults to Config.COMMITS_MAX_PAGES)
            workers: Concurrent page fetches (defaults to Config.FETCH_WORKERS)
        """
        fetch_config = Config.get_fetch_config()
        self.client = client
        self.per_page = int(per_page or fetch_config["per_page"])
        self.max_pages = int(max_pages or fetch_config["max_pages"])
        self.workers = max(1, int(workers or fetch_config["workers"]))
        self.anomalies: List[ParseAnomaly] = []

    @property
    def provider(self) -> str:
        return self.client.provider

    def fetch_commits(
        self,
        repo_ref: str,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        per_page: Optional[int] = None,
        max_pages: Optional[int] = None,
    ) -> List[NormalizedCommit]:
        """Fetch commits in provider order across as many pages as exist.

        Raises:
            ProviderError: If any page fails; already-fetched pages are discarded
        """
        per_page = int(per_page or self.per_page)
        max_pages = int(max_pages or self.max_pages)
        logger.info(f"Fetching commits from {self.provider}: {repo_ref}")

        with Timer("provider.fetch_commits", provider=self.provider):
            pages = self._fetch_pages(repo_ref, since, until, per_page, max_pages)

        raw: List[Dict[str, Any]] = []
        for page in sorted(pages):
            raw.extend(pages[page])
        commits = self._normalize_all(raw, repo_ref)
        incr("provider.commits", value=len(commits), provider=self.provider)
        logger.info(f"✓ Fetched {len(commits)} commits from {len(pages)} page(s)")
        return commits

    def _fetch_pages(self, repo_ref, since, until, per_page, max_pages) -> Dict[int, List[Dict[str, Any]]]:
        pages: Dict[int, List[Dict[str, Any]]] = {}
        next_page = 1
        exhausted = False
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="commit-pages") as pool:
            while not exhausted and next_page <= max_pages:
                wave = list(range(next_page, min(next_page + self.workers, max_pages + 1)))
                futures = {
                    page: pool.submit(
                        self.client.list_commits,
                        repo_ref,
                        since=since,
                        until=until,
                        per_page=per_page,
                        page=page,
                    )
                    for page in wave
                }
                for page in wave:
                    try:
                        batch = futures[page].result()
                    except ProviderError as e:
                        for f in futures.values():
                            f.cancel()
                        incr("provider.page_failure", provider=self.provider, page=page, code=e.code)
                        logger.error(f"Page {page} of {repo_ref} failed: {e}")
                        raise
                    except Exception as e:  # noqa: BLE001
                        for f in futures.values():
                            f.cancel()
                        raise ProviderError(f"Failed to fetch page {page} of {repo_ref}: {e}", code="UNKNOWN") from e
                    pages[page] = batch or []
                    if len(pages[page]) < per_page:
                        # Later pages in this wave lie past the end
                        exhausted = True
                        break
                next_page = wave[-1] + 1
        if not exhausted:
            logger.warning(f"Stopped at page limit ({max_pages}) for {repo_ref}; history may be truncated")
        return pages

    def fetch_commits_between(self, repo_ref: str, from_ref: str, to_ref: str) -> List[NormalizedCommit]:
        logger.info(f"Comparing {from_ref}...{to_ref} on {self.provider}: {repo_ref}")
        with Timer("provider.compare_refs", provider=self.provider):
            raw = self.client.compare_refs(repo_ref, from_ref, to_ref)
        commits = self._normalize_all(raw, repo_ref)
        logger.info(f"✓ {len(commits)} commits between {from_ref} and {to_ref}")
        return commits

    def get_commit_detail(self, repo_ref: str, sha: str) -> NormalizedCommit:
        """Fetch one commit with its file changes.

        Raises:
            ProviderError: On transport failure or a malformed payload
        """
        raw = self.client.get_commit_detail(repo_ref, sha)
        try:
            return self.client.normalize_commit(raw, repo_ref)
        except (ValueError, TypeError, AttributeError) as e:
            raise ProviderError(f"Malformed commit payload for {sha}: {e}", code="UNKNOWN") from e

    def latest_version(self, repo_ref: str) -> Optional[str]:
        """Highest semantic-version tag of the repository, if any."""
        return latest_version_tag(self.client.get_tags(repo_ref))

    def commit_url(self, repository_url: str, sha: str) -> str:
        return self.client.commit_url(repository_url, sha)

    def _normalize_all(self, raw: List[Any], repo_ref: str) -> List[NormalizedCommit]:
        self.anomalies = []
        commits: List[NormalizedCommit] = []
        seen = set()
        for index, item in enumerate(raw):
            try:
                commit = self.client.normalize_commit(item, repo_ref)
            except (ValueError, TypeError, AttributeError) as e:
                # pydantic ValidationError is a ValueError too
                self.anomalies.append(ParseAnomaly(source=f"{self.provider}:{repo_ref}#{index}", detail=str(e)))
                logger.warning(f"Dropping malformed commit record #{index} from {repo_ref}: {e}")
                continue
            if commit.id in seen:
                continue
            seen.add(commit.id)
            commits.append(commit)
        if self.anomalies:
            incr("provider.malformed_records", value=len(self.anomalies), provider=self.provider)
        return commits

    def close(self) -> None:
        self.client.close()
