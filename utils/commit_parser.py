#!/usr/bin/env python3
"""Conventional commit parsing.

Only the subject line is matched against ``type(scope)!: description``.
Anything that does not match still yields a ParsedCommit with type ``other``
and the subject line as its description, so ``parse`` never raises.
"""

from __future__ import annotations

import re
from typing import Optional, Tuple

from utils.commit_models import ParsedCommit

OTHER_TYPE = "other"
EMPTY_MESSAGE_DESCRIPTION = "No commit message"

_SUBJECT_RE = re.compile(r"^(?P<type>\w+)(?:\((?P<scope>[^)]*)\))?(?P<bang>!)?:\s*(?P<desc>.*)$")
_BREAKING_FOOTER_RE = re.compile(r"^BREAKING[ -]CHANGE:")


def _split_message(message: str) -> Tuple[str, Optional[str]]:
	lines = message.replace("\r\n", "\n").split("\n")
	subject = lines[0].strip()
	body = "\n".join(lines[1:]).strip()
	return subject, (body or None)


def has_breaking_footer(body: Optional[str]) -> bool:
	if not body:
		return False
	return any(_BREAKING_FOOTER_RE.match(line.strip()) for line in body.split("\n"))


def parse(message: Optional[str]) -> ParsedCommit:
	"""Parse a commit message into a ParsedCommit.

	Args:
		message: Raw commit message, possibly multi-line, empty, or None

	Returns:
		ParsedCommit whose description is never empty
	"""
	text = message if isinstance(message, str) else ("" if message is None else str(message))
	subject, body = _split_message(text)
	if not subject:
		# Leading blank lines: promote the first non-empty line
		non_empty = [ln.strip() for ln in text.splitlines() if ln.strip()]
		if not non_empty:
			return ParsedCommit(type=OTHER_TYPE, description=EMPTY_MESSAGE_DESCRIPTION)
		subject = non_empty[0]
		rest = "\n".join(non_empty[1:])
		body = rest or None

	breaking_footer = has_breaking_footer(body)
	match = _SUBJECT_RE.match(subject)
	if match:
		desc = match.group("desc").strip()
		if desc:
			scope = (match.group("scope") or "").strip() or None
			return ParsedCommit(
				type=match.group("type").lower(),
				scope=scope,
				description=desc,
				is_breaking=bool(match.group("bang")) or breaking_footer,
				body=body,
			)

	# Unstructured subjects are never breaking, footer or not
	return ParsedCommit(
		type=OTHER_TYPE,
		scope=None,
		description=subject,
		is_breaking=False,
		body=body,
	)
