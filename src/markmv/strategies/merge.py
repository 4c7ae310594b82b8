"""Heading-conflict strategies for join and merge.

When two combined documents contain headings with the same slug, one side is
renamed so every anchor stays unambiguous:

- append: the later document's heading gets a suffix
- prepend: the earlier document's heading gets a suffix
- interactive: each conflict needs an explicit "append" or "prepend" answer
"""

from __future__ import annotations

import re
from collections import defaultdict
from typing import Mapping, Sequence

from ..errors import ConflictResolutionRequired, UnsupportedStrategyError
from ..models import Document, HeadingConflict
from ..parser.markdown import slugify

MERGE_STRATEGIES = ("append", "prepend", "interactive")

ATX_HEADING = re.compile(r"^(?P<open>[ ]{0,3}#{1,6}(?:[ \t]+|$))(?P<text>.*?)(?P<close>[ \t]+#+)?(?P<trail>[ \t]*\r?\n?)$")


def detect_conflicts(pieces: Sequence[Document]) -> list[HeadingConflict]:
    """Headings whose slug occurs in more than one of ``pieces``."""
    owners: dict[str, list[str]] = defaultdict(list)
    texts: dict[str, str] = {}
    for doc in pieces:
        for heading in doc.headings:
            base = slugify(heading.text)
            texts.setdefault(base, heading.text)
            if doc.path not in owners[base]:
                owners[base].append(doc.path)

    return [
        HeadingConflict(id=slug, heading=texts[slug], files=files)
        for slug, files in owners.items()
        if len(files) > 1
    ]


def _renamed_text(text: str, stem: str, taken: set[str]) -> str:
    candidate = f"{text} ({stem})"
    number = 2
    while slugify(candidate) in taken:
        candidate = f"{text} ({stem} {number})"
        number += 1
    taken.add(slugify(candidate))
    return candidate


def resolve_conflicts(
    pieces: Sequence[Document],
    strategy: str,
    resolutions: Mapping[str, str] | None = None,
) -> dict[str, dict[int, str]]:
    """Decide which headings to rename.

    Returns:
        Path -> {heading line (1-based) -> new heading text}.

    Raises:
        UnsupportedStrategyError: Unknown strategy or resolution value.
        ConflictResolutionRequired: Interactive strategy with unanswered conflicts.
    """
    if strategy not in MERGE_STRATEGIES:
        raise UnsupportedStrategyError(
            None, f"Unknown merge strategy '{strategy}'. Choose from: {', '.join(MERGE_STRATEGIES)}"
        )

    conflicts = detect_conflicts(pieces)
    if not conflicts:
        return {}

    resolutions = dict(resolutions or {})
    for conflict_id, choice in resolutions.items():
        if choice not in ("append", "prepend"):
            raise UnsupportedStrategyError(
                None, f"Resolution for '{conflict_id}' must be 'append' or 'prepend', got '{choice}'"
            )

    if strategy == "interactive":
        pending = [conflict for conflict in conflicts if conflict.id not in resolutions]
        if pending:
            raise ConflictResolutionRequired(pending)

    by_path = {doc.path: doc for doc in pieces}
    taken = {slugify(heading.text) for doc in pieces for heading in doc.headings}
    renames: dict[str, dict[int, str]] = defaultdict(dict)

    for conflict in conflicts:
        choice = resolutions.get(conflict.id, strategy)
        losers = conflict.files[1:] if choice == "append" else conflict.files[:-1]
        for path in losers:
            doc = by_path[path]
            for heading in doc.headings:
                if slugify(heading.text) == conflict.id:
                    renames[path][heading.line] = _renamed_text(heading.text, doc.stem, taken)

    return dict(renames)


def rename_heading_line(line: str, new_text: str) -> str:
    """Rewrite one heading line with new text, keeping its markers and line ending."""
    match = ATX_HEADING.match(line)
    if match:
        close = match.group("close") or ""
        return f"{match.group('open')}{new_text}{close}{match.group('trail')}"

    # Setext heading: the text line sits above the underline
    body = line.rstrip("\r\n")
    ending = line[len(body):]
    indent = body[: len(body) - len(body.lstrip())]
    return f"{indent}{new_text}{ending}"
