#!/usr/bin/env python3
"""Changelog agent: generate changelogs from commits and import existing ones.

Subcommands wire the commit source, synthesizer, import parsers and the
reconciliation engine together; every step can also be driven from Python.
"""

import json
import logging
import sys
from typing import List, Optional

from configs.config import Config
from storage.entry_store import JsonFileEntryStore
from utils.changelog_models import (
	ConflictResolution,
	DateHandling,
	ImportOptions,
	ImportStrategy,
	StoredEntry,
	ValidatedEntry,
)
from utils.commit_filter import CommitFilterSettings, UnknownTypePolicy
from utils.commit_source import CommitSourceAdapter
from utils.errors import ChangelogEngineError, friendly_message_from_code
from utils.reconciliation import ImportSession, ReconciliationEngine
from utils.synthesizer import ChangelogSynthesizer, SynthesisOptions

logger = logging.getLogger(__name__)


def build_source(provider: str) -> CommitSourceAdapter:
	if provider == "gitlab":
		from utils.gitlab_client import GitlabClient
		return CommitSourceAdapter(GitlabClient())
	from utils.github_client import GithubClient
	return CommitSourceAdapter(GithubClient())


def build_synthesizer(source: CommitSourceAdapter, use_ai: bool) -> ChangelogSynthesizer:
	enricher = None
	if use_ai:
		# boto3 is only needed when enrichment is requested
		from utils.enrichment import BedrockEnricher
		enricher = BedrockEnricher()
	return ChangelogSynthesizer(enricher=enricher, source=source)


def import_options_from_args(args) -> ImportOptions:
	return ImportOptions(
		strategy=ImportStrategy(args.strategy),
		preserve_existing_entries=not args.no_preserve,
		conflict_resolution=ConflictResolution(args.conflict),
		date_handling=DateHandling(args.dates),
		auto_generate_versions=args.auto_version,
		publish_imported_entries=args.publish,
		default_tags=args.tag or [],
	)


def prompt_resolver(entry: ValidatedEntry, existing: StoredEntry) -> str:
	"""Ask on the terminal whether to overwrite a version that already exists."""
	answer = input(f"Version {existing.version} already exists ('{existing.title}'). Overwrite with '{entry.title}'? [y/N] ")
	return "overwrite" if answer.strip().lower() in ("y", "yes") else "skip"


def print_preview(session: ImportSession) -> None:
	preview = session.preview_report
	if session.outcome is not None and session.outcome.detected_format is not None:
		print(f"Format: {session.outcome.detected_format.format} ({session.outcome.detected_format.confidence:.0%})")
	print(f"Entries: {preview.total_entries} ({preview.valid_entries} valid, {preview.invalid_entries} invalid)")
	if preview.duplicate_versions:
		print(f"Duplicate versions: {', '.join(preview.duplicate_versions)}")
	for e in session.entries:
		marker = "✓" if e.is_valid else "✗"
		print(f"  {marker} {e.version or '-':<12} {e.title}")
	for w in preview.warnings:
		print(f"Warning: {w}")
	for err in preview.errors:
		print(f"Error: {err}")


def run_session(session: ImportSession, options: ImportOptions, dry_run: bool, interactive: bool, as_json: bool) -> int:
	session.preview()
	if not as_json:
		print_preview(session)
	conflicts = session.conflicting_versions()
	if conflicts and not as_json:
		print(f"Existing versions in project: {', '.join(conflicts)} (conflict policy: {options.conflict_resolution.value})")
	for w in session.configure(options):
		logger.warning(w)
	if dry_run:
		session.cancel()
		if as_json:
			print(json.dumps(session.preview_report.model_dump(), indent=2, default=str))
		return 0
	resolver = prompt_resolver if interactive and sys.stdin.isatty() else None
	result = session.run(resolver=resolver)
	if as_json:
		print(json.dumps(result.model_dump(), indent=2, default=str))
	else:
		print(f"Imported: {result.imported_count}  Skipped: {result.skipped_count}  Errors: {result.error_count}")
		for w in result.warnings:
			print(f"Warning: {w}")
		for f in result.errors:
			print(f"Error: {f.title} ({f.version or 'no version'}): {f.message}", file=sys.stderr)
	return 0 if result.success else 1


def _add_import_options(p) -> None:
	p.add_argument("--project", required=True, help="Target project id")
	p.add_argument("--store", default=None, help="Entry store file (defaults to ENTRY_STORE_PATH)")
	p.add_argument("--strategy", choices=[s.value for s in ImportStrategy], default=ImportStrategy.MERGE.value)
	p.add_argument("--no-preserve", action="store_true", help="With --strategy replace, delete existing entries")
	p.add_argument("--conflict", choices=[c.value for c in ConflictResolution], default=ConflictResolution.SKIP.value)
	p.add_argument("--dates", choices=[d.value for d in DateHandling], default=DateHandling.PRESERVE.value)
	p.add_argument("--auto-version", action="store_true", help="Assign versions to entries that have none")
	p.add_argument("--publish", action="store_true", help="Mark imported entries as published")
	p.add_argument("--tag", action="append", help="Default tag added to every imported entry (repeatable)")
	p.add_argument("--dry-run", action="store_true", help="Preview only; nothing is written")
	p.add_argument("--interactive", action="store_true", help="Ask on conflicts when --conflict prompt")
	p.add_argument("--json", action="store_true")


def main(argv: Optional[List[str]] = None):
	"""CLI entry point for the changelog agent."""
	import argparse

	parser = argparse.ArgumentParser(
		description="Changelog Agent - Generate changelogs from commits and import existing changelogs",
		formatter_class=argparse.RawDescriptionHelpFormatter,
		epilog="""
Examples:
  python -m agents.changelog_agent generate --repo octo/app --from v1.2.0 --to v1.3.0
  python -m agents.changelog_agent generate --provider gitlab --repo group/app --days 14 --ai
  python -m agents.changelog_agent preview --file CHANGELOG.md
  python -m agents.changelog_agent import --project web --file CHANGELOG.md --conflict overwrite
  python -m agents.changelog_agent import-canny --project web --publish
  python -m agents.changelog_agent publish-entry --entry-id 3f2a...
		""",
	)
	parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
	sub = parser.add_subparsers(dest="command", required=True)

	gen = sub.add_parser("generate", help="Generate a changelog from commits")
	gen.add_argument("--provider", choices=["github", "gitlab"], default="github")
	gen.add_argument("--repo", required=True, help="Repository URL or owner/name path")
	gen.add_argument("--from", dest="from_ref", help="Base ref (tag, branch or sha)")
	gen.add_argument("--to", dest="to_ref", default="HEAD", help="Head ref (default HEAD)")
	gen.add_argument("--days", type=int, default=7, help="Look-back window when --from is not given")
	gen.add_argument("--version", default=None, help="Version for the header; inferred from tags when omitted")
	gen.add_argument("--ai", action="store_true", help="Enrich entries with Bedrock")
	gen.add_argument("--links", action="store_true", help="Include commit links")
	gen.add_argument("--include-chores", action="store_true")
	gen.add_argument("--include-unknown", action="store_true", help="Keep commits with unrecognized types")
	gen.add_argument("--type", dest="custom_types", action="append", help="Extra commit type to include (repeatable)")
	gen.add_argument("--no-emoji", action="store_true")
	gen.add_argument("--import-into", default=None, help="Also import the entries into this project")
	gen.add_argument("--store", default=None)
	gen.add_argument("--json", action="store_true")

	pre = sub.add_parser("preview", help="Parse a Markdown changelog and report what would be imported")
	pre.add_argument("--file", required=True)
	pre.add_argument("--json", action="store_true")

	imp = sub.add_parser("import", help="Import a Markdown changelog into a project")
	imp.add_argument("--file", required=True)
	_add_import_options(imp)

	can = sub.add_parser("import-canny", help="Import Canny changelog entries into a project")
	can.add_argument("--status", choices=["all", "published", "scheduled", "draft"], default="published")
	can.add_argument("--max-entries", type=int, default=None)
	can.add_argument("--post-tags", action="store_true", help="Include tags of linked posts")
	_add_import_options(can)

	pub = sub.add_parser("publish-entry", help="Publish a stored entry (scheduled job executor)")
	pub.add_argument("--entry-id", required=True)
	pub.add_argument("--store", default=None)

	args = parser.parse_args(argv)

	# Set up logging
	log_level = logging.DEBUG if args.verbose else logging.INFO
	logging.basicConfig(
		level=log_level,
		format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
	)
	if not args.verbose:
		logging.getLogger("urllib3").setLevel(logging.WARNING)
		logging.getLogger("botocore").setLevel(logging.WARNING)

	source = None
	try:
		if args.command == "generate":
			source = build_source(args.provider)
			synthesizer = build_synthesizer(source, args.ai)
			filters = CommitFilterSettings(
				include_chores=args.include_chores,
				custom_commit_types=args.custom_types or [],
				**({"unknown_type_policy": UnknownTypePolicy.INCLUDE} if args.include_unknown else {}),
			)
			options = SynthesisOptions(
				use_ai=args.ai,
				include_commit_links=args.links,
				version=args.version,
				filters=filters,
				emoji=not args.no_emoji,
			)
			if args.from_ref:
				changelog = synthesizer.generate_between_refs(args.repo, args.from_ref, args.to_ref, options)
			else:
				changelog = synthesizer.generate_from_recent(args.repo, args.days, options)
			if args.json:
				print(json.dumps(changelog.model_dump(exclude={"commits"}), indent=2, default=str))
			else:
				print(changelog.content)
			for anomaly in source.anomalies:
				logger.warning(f"Skipped malformed commit record ({anomaly.source}): {anomaly.detail}")
			if args.import_into:
				from utils.markdown_import import entries_from_changelog
				engine = ReconciliationEngine(JsonFileEntryStore(args.store))
				session = ImportSession.from_outcome(args.import_into, engine, entries_from_changelog(changelog), source="synthesized")
				session.preview()
				session.configure(ImportOptions())
				result = session.run()
				logger.info(f"✓ Imported {result.imported_count} generated entries into {args.import_into}")
			sys.exit(0)

		if args.command == "preview":
			from utils.markdown_import import MarkdownImportParser
			with open(args.file, "r", encoding="utf-8") as f:
				outcome = MarkdownImportParser().parse(f.read())
			if args.json:
				print(json.dumps(outcome.model_dump(exclude={"sections"}), indent=2, default=str))
			else:
				session = ImportSession.from_outcome("preview", None, outcome, source="markdown")
				session.preview()
				print_preview(session)
			sys.exit(0 if outcome.preview.invalid_entries == 0 else 1)

		if args.command == "import":
			with open(args.file, "r", encoding="utf-8") as f:
				text = f.read()
			engine = ReconciliationEngine(JsonFileEntryStore(args.store))
			session = ImportSession.from_markdown(args.project, engine, text)
			sys.exit(run_session(session, import_options_from_args(args), args.dry_run, args.interactive, args.json))

		if args.command == "import-canny":
			from utils.canny_source import CannyImportOptions, CannySource
			canny = CannySource()
			canny_options = CannyImportOptions(
				status_filter=args.status,
				include_post_tags=args.post_tags,
				**({"max_entries": args.max_entries} if args.max_entries else {}),
			)
			engine = ReconciliationEngine(JsonFileEntryStore(args.store))
			session = ImportSession(args.project, engine, lambda: canny.fetch_outcome(canny_options), source="canny")
			sys.exit(run_session(session, import_options_from_args(args), args.dry_run, args.interactive, args.json))

		if args.command == "publish-entry":
			from utils.job_executor import ChangelogPublishExecutor
			ChangelogPublishExecutor(JsonFileEntryStore(args.store)).execute(args.entry_id)
			print(f"Published entry {args.entry_id}")
			sys.exit(0)

	except ChangelogEngineError as e:
		code = getattr(e, "code", "UNKNOWN")
		if code == "TIMEOUT":
			print(
				f"Error: Timeout while fetching data ({Config.HTTP_TIMEOUT_S}s). Please retry or increase HTTP_TIMEOUT_S.",
				file=sys.stderr,
			)
		else:
			print(f"Error: {friendly_message_from_code(code, fallback=str(e))}", file=sys.stderr)
		if args.verbose:
			logger.exception("Detailed error information:")
		sys.exit(1)

	except OSError as e:
		print(f"Error: {e}", file=sys.stderr)
		sys.exit(1)

	except KeyboardInterrupt:
		print("\nOperation cancelled by user", file=sys.stderr)
		sys.exit(1)

	except Exception as e:
		print(f"Unexpected error: {e}", file=sys.stderr)
		if args.verbose:
			logger.exception("Detailed error information:")
		else:
			print("Use --verbose for more details", file=sys.stderr)
		sys.exit(1)

	finally:
		if source is not None:
			source.close()


if __name__ == "__main__":
	main()
