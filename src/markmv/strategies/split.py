"""Split strategies: decide where one document is cut into parts.

A strategy only returns line ranges. Building the output files, moving anchors
and rewriting links is the planner's job.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from ..config import SPLIT_FILENAME_MAX_LENGTH, SPLIT_MARKERS, SPLIT_MAX_SIZE_KB
from ..errors import ErrorCode, PlanError, UnsupportedStrategyError
from ..models import Document


@dataclass(frozen=True)
class SplitSection:
    """One output part: lines ``start_line`` to ``end_line`` (0-based, end exclusive)."""

    title: str | None
    start_line: int
    end_line: int


def document_lines(doc: Document) -> list[str]:
    return doc.content.splitlines(keepends=True)


def body_start_line(doc: Document) -> int:
    """Index of the first line after the frontmatter."""
    return doc.content.count("\n", 0, doc.frontmatter_end)


def _in_code(doc: Document, line: int) -> bool:
    return any(start <= line < end for start, end in doc.code_blocks)


def _first_heading(doc: Document, start: int, end: int) -> str | None:
    for heading in doc.headings:
        if start <= heading.line - 1 < end:
            return heading.text
    return None


def section_filename(title: str | None, index: int) -> str:
    """Filename stem for a part: sanitized title, or ``section-N`` (1-based)."""
    stem = (title or "").lower()
    stem = re.sub(r"[^a-z0-9\s-]", "", stem)
    stem = re.sub(r"\s+", "-", stem.strip())
    stem = re.sub(r"-+", "-", stem)
    stem = stem[:SPLIT_FILENAME_MAX_LENGTH].strip("-")
    return stem or f"section-{index}"


class HeaderSplitStrategy:
    """Start a new part at every heading of ``header_level`` or shallower.

    Without an explicit level the shallowest heading level in the document is
    used. Text before the first boundary heading stays with the first part.
    """

    name = "headers"

    def __init__(self, header_level: int | None = None) -> None:
        if header_level is not None and not 1 <= header_level <= 6:
            raise UnsupportedStrategyError(None, f"header_level must be between 1 and 6, got {header_level}")
        self.header_level = header_level

    def split(self, doc: Document) -> list[SplitSection]:
        if not doc.headings:
            raise PlanError(ErrorCode.INVALID_ARGUMENT, f"{doc.path}: no headings to split on")

        level = self.header_level or min(heading.level for heading in doc.headings)
        boundaries = [heading for heading in doc.headings if heading.level <= level]
        if not boundaries:
            raise PlanError(ErrorCode.INVALID_ARGUMENT, f"{doc.path}: no headings of level {level} or above")

        total = len(document_lines(doc))
        sections: list[SplitSection] = []
        for i, heading in enumerate(boundaries):
            start = body_start_line(doc) if i == 0 else heading.line - 1
            end = boundaries[i + 1].line - 1 if i + 1 < len(boundaries) else total
            sections.append(SplitSection(heading.text, start, end))
        return sections


class SizeSplitStrategy:
    """Pack paragraphs and sections into parts no larger than a budget.

    Parts are cut only before a heading or after a blank line, never inside a
    code block. A single block larger than the budget becomes its own part.
    """

    name = "size"

    def __init__(self, max_size: float | None = SPLIT_MAX_SIZE_KB, max_lines: int | None = None) -> None:
        if max_lines is not None and max_lines < 1:
            raise UnsupportedStrategyError(None, f"max_lines must be positive, got {max_lines}")
        if max_lines is None and (max_size is None or max_size <= 0):
            raise UnsupportedStrategyError(None, f"max_size must be positive, got {max_size}")
        self.max_size = max_size
        self.max_lines = max_lines

    def _cost(self, lines: list[str]) -> int:
        if self.max_lines is not None:
            return len(lines)
        return sum(len(line.encode("utf-8")) for line in lines)

    @property
    def _budget(self) -> float:
        if self.max_lines is not None:
            return self.max_lines
        return (self.max_size or SPLIT_MAX_SIZE_KB) * 1024

    def _blocks(self, doc: Document, lines: list[str]) -> list[tuple[int, int]]:
        heading_lines = {heading.line - 1 for heading in doc.headings}
        first = body_start_line(doc)
        starts = [first]
        for i in range(first + 1, len(lines)):
            # A part may begin at an opening fence but never inside the block
            if any(start < i < end for start, end in doc.code_blocks):
                continue
            after_blank = not lines[i - 1].strip() and lines[i].strip()
            if i in heading_lines or after_blank:
                starts.append(i)
        return [(start, end) for start, end in zip(starts, starts[1:] + [len(lines)])]

    def split(self, doc: Document) -> list[SplitSection]:
        lines = document_lines(doc)
        budget = self._budget
        sections: list[SplitSection] = []
        current_start: int | None = None
        current_cost = 0
        current_end = 0

        for start, end in self._blocks(doc, lines):
            cost = self._cost(lines[start:end])
            if current_start is not None and current_cost + cost > budget:
                sections.append(SplitSection(_first_heading(doc, current_start, current_end), current_start, current_end))
                current_start, current_cost = None, 0
            if current_start is None:
                current_start = start
            current_cost += cost
            current_end = end

        if current_start is not None:
            sections.append(SplitSection(_first_heading(doc, current_start, current_end), current_start, current_end))
        return sections


class ManualSplitStrategy:
    """Cut at marker lines such as ``<!-- split -->``. Marker lines are dropped."""

    name = "manual"

    def __init__(self, markers: Iterable[str] | None = None) -> None:
        self.markers = tuple(markers) if markers else SPLIT_MARKERS

    def split(self, doc: Document) -> list[SplitSection]:
        lines = document_lines(doc)
        marker_lines = [
            i
            for i in range(body_start_line(doc), len(lines))
            if lines[i].strip() in self.markers and not _in_code(doc, i)
        ]
        if not marker_lines:
            raise PlanError(
                ErrorCode.INVALID_ARGUMENT,
                f"{doc.path}: no split markers found (expected one of: {', '.join(self.markers)})",
            )

        bounds = [body_start_line(doc) - 1] + marker_lines + [len(lines)]
        sections: list[SplitSection] = []
        for previous, marker in zip(bounds, bounds[1:]):
            start, end = previous + 1, marker
            if not "".join(lines[start:end]).strip():
                continue
            sections.append(SplitSection(_first_heading(doc, start, end), start, end))
        return sections


class LineSplitStrategy:
    """Start a new part at each given 1-based line number."""

    name = "lines"

    def __init__(self, lines: Iterable[int] | None = None) -> None:
        self.lines = sorted(set(lines or ()))
        if not self.lines:
            raise UnsupportedStrategyError(None, "The lines strategy needs at least one split line")

    def split(self, doc: Document) -> list[SplitSection]:
        lines = document_lines(doc)
        first = body_start_line(doc)
        for number in self.lines:
            if not first + 1 < number <= len(lines):
                raise UnsupportedStrategyError(
                    None, f"Split line {number} is outside the document body (lines {first + 2}-{len(lines)})"
                )

        bounds = [first] + [number - 1 for number in self.lines] + [len(lines)]
        return [SplitSection(_first_heading(doc, start, end), start, end) for start, end in zip(bounds, bounds[1:])]


SPLIT_STRATEGIES = {
    "headers": HeaderSplitStrategy,
    "size": SizeSplitStrategy,
    "manual": ManualSplitStrategy,
    "lines": LineSplitStrategy,
}


def get_split_strategy(name: str, **params):
    """Instantiate a split strategy by name.

    Raises:
        UnsupportedStrategyError: For unknown names or parameters.
    """
    try:
        strategy_cls = SPLIT_STRATEGIES[name]
    except KeyError:
        raise UnsupportedStrategyError(
            None, f"Unknown split strategy '{name}'. Choose from: {', '.join(SPLIT_STRATEGIES)}"
        ) from None
    try:
        return strategy_cls(**params)
    except TypeError as e:
        raise UnsupportedStrategyError(None, f"Invalid parameters for split strategy '{name}': {e}") from e
