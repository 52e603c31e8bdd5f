#!/usr/bin/env python3
"""Changelog synthesis from normalized commits.

Pipeline: parse -> filter -> categorize -> optional AI enrichment -> render.
Parsing, filtering and categorizing are pure; enrichment runs in a bounded
worker pool and any failure or timeout keeps the unenriched entry.
"""

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from configs.config import Config
from utils.changelog_models import ChangelogEntry, ChangelogMetadata, GeneratedChangelog
from utils.commit_filter import CommitFilterSettings, categorize, should_include
from utils.commit_models import NormalizedCommit, ParsedCommit, Provider
from utils.commit_parser import parse
from utils.commit_source import CommitSourceAdapter
from utils.enrichment import Enricher, apply_enrichment
from utils.errors import ProviderError
from utils.markdown_renderer import render_changelog
from utils.metrics import Timer, incr
from utils.versioning import infer_version

logger = logging.getLogger(__name__)

# Granularity of the per-entry timeout check
_POLL_S = 0.05


class SynthesisOptions(BaseModel):
    """Options for one synthesis run."""

    use_ai: bool = False
    include_commit_links: bool = False
    include_impact: bool = True
    include_technical_details: bool = True
    repository_url: Optional[str] = None
    provider: Optional[Provider] = None
    filters: CommitFilterSettings = Field(default_factory=CommitFilterSettings)
    version: Optional[str] = None
    latest_tag: Optional[str] = Field(None, description="When set and version is not, the next version is inferred from it")
    temperature: float = Field(default_factory=lambda: Config.ENRICH_TEMPERATURE, ge=0.0, le=1.0)
    enrichment_timeout_s: float = Field(default_factory=lambda: Config.ENRICH_TIMEOUT_S, gt=0)
    enrichment_workers: int = Field(default_factory=lambda: Config.ENRICH_WORKERS, ge=1)
    emoji: bool = True

    model_config = ConfigDict(frozen=True)


def commit_link(provider: Optional[str], repository_url: Optional[str], sha: str, fallback: str = "") -> str:
    """Provider-shaped commit URL: ``/commit/<sha>`` or GitLab's ``/-/commit/<sha>``."""
    if not repository_url:
        return fallback
    base = repository_url.rstrip("/")
    if base.endswith(".git"):
        base = base[:-4]
    if provider == "gitlab":
        return f"{base}/-/commit/{sha}"
    return f"{base}/commit/{sha}"


class ChangelogSynthesizer:
    """Builds GeneratedChangelog documents from commits."""

    def __init__(
        self,
        enricher: Optional[Enricher] = None,
        source: Optional[CommitSourceAdapter] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.enricher = enricher
        self.source = source
        self.clock = clock

    def build_entries(
        self, commits: List[NormalizedCommit], options: SynthesisOptions
    ) -> Tuple[List[ChangelogEntry], List[ParsedCommit]]:
        """Parse, filter and categorize commits, keeping commit order."""
        entries: List[ChangelogEntry] = []
        kept: List[ParsedCommit] = []
        for commit in commits:
            parsed = parse(commit.message)
            if not should_include(parsed, options.filters):
                logger.debug(f"Filtered out {commit.short_id} ({parsed.type})")
                continue
            kept.append(parsed)
            entries.append(
                ChangelogEntry(
                    category=categorize(parsed),
                    description=parsed.description,
                    related_files=[f.path for f in commit.files_changed],
                    commit_ref=commit.id,
                    commit_url=commit_link(options.provider, options.repository_url, commit.id, fallback=commit.url),
                )
            )
        return entries, kept

    def _enrich_all(self, entries: List[ChangelogEntry], options: SynthesisOptions) -> Tuple[List[ChangelogEntry], int, int, int]:
        """Returns (entries, successes, failures, tokens_used).

        Each entry's timeout runs from the moment a worker picks it up. Once
        every worker is stuck on a timed-out call, entries still queued are
        given up as well, so hung calls never stall the run for more than one
        timeout per worker.
        """
        if not entries:
            return entries, 0, 0, 0
        out = list(entries)
        successes = failures = tokens = 0
        timeout_s = options.enrichment_timeout_s
        started: Dict[int, float] = {}

        def run(index: int, entry: ChangelogEntry):
            started[index] = time.monotonic()
            return self.enricher.enrich(entry, options.temperature)

        def give_up(index: int, reason: str) -> None:
            nonlocal failures
            failures += 1
            incr("enrich.timeout")
            logger.warning(f"Enrichment {reason} for {entries[index].commit_ref[:7]}; keeping original wording")

        pool = ThreadPoolExecutor(max_workers=options.enrichment_workers, thread_name_prefix="enrich")
        try:
            pending = {pool.submit(run, i, e): i for i, e in enumerate(entries)}
            hung: List[Future] = []
            while pending:
                done, _ = wait(list(pending), timeout=min(timeout_s, _POLL_S), return_when=FIRST_COMPLETED)
                for future in done:
                    i = pending.pop(future)
                    try:
                        result = future.result()
                    except Exception as e:  # noqa: BLE001
                        failures += 1
                        incr("enrich.failure", code=getattr(e, "code", "UNKNOWN"))
                        logger.warning(f"Enrichment failed for {entries[i].commit_ref[:7]}: {e}; keeping original wording")
                        continue
                    out[i] = apply_enrichment(entries[i], result.text)
                    tokens += result.tokens_used
                    successes += 1
                now = time.monotonic()
                for future, i in list(pending.items()):
                    if i in started and now - started[i] >= timeout_s:
                        del pending[future]
                        hung.append(future)
                        give_up(i, "timed out")
                hung = [f for f in hung if not f.done()]
                if hung and len(hung) >= options.enrichment_workers:
                    for future, i in pending.items():
                        future.cancel()
                        give_up(i, "skipped, all workers stuck")
                    pending.clear()
        finally:
            # Do not block the run on hung enrichment calls
            pool.shutdown(wait=False, cancel_futures=True)
        return out, successes, failures, tokens

    def synthesize(self, commits: List[NormalizedCommit], options: Optional[SynthesisOptions] = None) -> GeneratedChangelog:
        options = options or SynthesisOptions()
        now = self.clock()
        logger.info(f"Synthesizing changelog from {len(commits)} commits")

        entries, kept = self.build_entries(commits, options)

        successes = failures = tokens = 0
        if options.use_ai and self.enricher is not None and entries:
            with Timer("synth.enrich", entries=len(entries)):
                entries, successes, failures, tokens = self._enrich_all(entries, options)
            logger.info(f"✓ Enriched {successes}/{len(entries)} entries ({failures} fell back)")
        elif options.use_ai:
            logger.info("AI enrichment requested but no enricher configured; using commit wording")

        version = options.version or infer_version(kept, options.latest_tag)
        content = render_changelog(
            entries,
            generated_on=now.date(),
            version=version,
            include_impact=options.include_impact,
            include_technical=options.include_technical_details,
            include_commit_links=options.include_commit_links,
            emoji=options.emoji,
        )
        incr("synth.entries", value=len(entries))
        return GeneratedChangelog(
            content=content,
            version=version,
            entries=entries,
            commits=list(commits),
            metadata=ChangelogMetadata(
                total_commits=len(commits),
                processed_commits=len(entries),
                ai_generated=successes > 0,
                enrichment_failures=failures,
                tokens_used=tokens,
                generated_at=now,
                provider=options.provider,
            ),
        )

    def _require_source(self) -> CommitSourceAdapter:
        if self.source is None:
            raise ValueError("No commit source configured")
        return self.source

    def generate_between_refs(self, repo_ref: str, from_ref: str, to_ref: str, options: Optional[SynthesisOptions] = None) -> GeneratedChangelog:
        """Changelog for the commits between two refs (tags, branches, shas)."""
        source = self._require_source()
        commits = source.fetch_commits_between(repo_ref, from_ref, to_ref)
        return self.synthesize(commits, self._with_source_defaults(repo_ref, options))

    def generate_from_recent(self, repo_ref: str, days: int = 7, options: Optional[SynthesisOptions] = None) -> GeneratedChangelog:
        """Changelog for the commits of the last ``days`` days."""
        source = self._require_source()
        since = self.clock() - timedelta(days=days)
        commits = source.fetch_commits(repo_ref, since=since)
        return self.synthesize(commits, self._with_source_defaults(repo_ref, options))

    def _with_source_defaults(self, repo_ref: str, options: Optional[SynthesisOptions]) -> SynthesisOptions:
        options = options or SynthesisOptions()
        update = {}
        if options.provider is None:
            update["provider"] = self.source.provider
        if options.repository_url is None and repo_ref.startswith(("http://", "https://")):
            update["repository_url"] = repo_ref
        if options.version is None and options.latest_tag is None:
            try:
                update["latest_tag"] = self.source.latest_version(repo_ref)
            except ProviderError as e:
                # Version is optional; the changelog still renders without it
                logger.warning(f"Could not read tags for {repo_ref}: {e}")
        return options.model_copy(update=update) if update else options
