"""Pydantic models for documents, links, change sets and reports."""

from __future__ import annotations

import hashlib
import os
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

LinkStyle = Literal["inline", "reference", "wikilink", "image", "claude"]
ChangeKind = Literal["file-created", "file-modified", "file-deleted", "link-updated"]
OperationKind = Literal["move", "split", "join", "merge", "convert", "rename-heading", "manual"]
BrokenReason = Literal["missing", "dangling-fragment"]


class Heading(BaseModel):
    """A heading extracted from a document."""

    model_config = ConfigDict(frozen=True)

    level: int
    text: str
    slug: str  # Unique within the owning document
    offset: int  # Offset of the first character of the heading line
    line: int  # 1-based line number


class Link(BaseModel):
    """A single link occurrence inside a document.

    ``raw`` is the exact source text at ``start:end``. Rendering a link whose
    fields are unchanged reproduces ``raw`` (see parser.links.render_link).
    """

    model_config = ConfigDict(frozen=True)

    style: LinkStyle
    raw: str
    target: str  # As written, without the fragment. Empty for pure anchors.
    fragment: str | None = None  # Text after '#', None when there is no '#'
    text: str | None = None  # Label, alt text, wikilink alias or reference id
    title: str = ""  # Raw title suffix including leading whitespace: ' "Title"'
    gap: str = " "  # Whitespace between ':' and destination (reference definitions)
    embed: bool = False  # Wikilink transclusion (![[...]])
    angle: bool = False  # Destination written as <target>, which may hold spaces
    start: int
    end: int
    line: int

    @property
    def destination(self) -> str:
        if self.fragment is None:
            return self.target
        return f"{self.target}#{self.fragment}"

    @property
    def is_anchor(self) -> bool:
        return not self.target and self.fragment is not None


class Document(BaseModel):
    """Immutable snapshot of one parsed markdown file."""

    model_config = ConfigDict(frozen=True)

    path: str  # Canonical absolute path
    content: str
    headings: tuple[Heading, ...] = ()
    links: tuple[Link, ...] = ()
    metadata: dict[str, Any] = Field(default_factory=dict)  # YAML frontmatter
    frontmatter_end: int = 0  # Offset where the body starts
    code_blocks: tuple[tuple[int, int], ...] = ()  # 0-based [start, end) line ranges
    modified_at: float | None = None

    @property
    def directory(self) -> str:
        return os.path.dirname(self.path)

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    @property
    def stem(self) -> str:
        return os.path.splitext(self.name)[0]

    @property
    def slugs(self) -> set[str]:
        return {heading.slug for heading in self.headings}

    @property
    def body(self) -> str:
        return self.content[self.frontmatter_end :]

    def heading(self, slug: str) -> Heading | None:
        for heading in self.headings:
            if heading.slug == slug:
                return heading
        return None


# ─────────────────────────────────────────────────────────────────────────────
# Changes
# ─────────────────────────────────────────────────────────────────────────────


class FileCreated(BaseModel):
    """Write a new file. The content is captured at planning time."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["file-created"] = "file-created"
    path: str
    content: str


class FileModified(BaseModel):
    """Replace the whole content of an existing file."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["file-modified"] = "file-modified"
    path: str
    content: str


class FileDeleted(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["file-deleted"] = "file-deleted"
    path: str


class LinkUpdated(BaseModel):
    """Replace ``old_value`` at ``start:end`` of the file with ``new_value``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["link-updated"] = "link-updated"
    path: str
    start: int
    end: int
    old_value: str
    new_value: str
    line: int | None = None


Change = Annotated[
    Union[FileCreated, FileModified, FileDeleted, LinkUpdated],
    Field(discriminator="kind"),
]


class ChangeSet(BaseModel):
    """Ordered, replayable list of changes planned against one snapshot.

    Within each file, link updates are ordered by descending start offset so
    applying them in sequence never shifts a span that is still pending.
    """

    model_config = ConfigDict(frozen=True)

    operation: OperationKind
    root: str
    changes: tuple[Change, ...] = ()
    # SHA-256 of every snapshot file the plan edits or deletes
    fingerprints: dict[str, str] = Field(default_factory=dict)
    warnings: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _check_span_order(self) -> ChangeSet:
        last_start: dict[str, int] = {}
        for change in self.changes:
            if isinstance(change, (FileCreated, FileModified, FileDeleted)):
                last_start.pop(change.path, None)
                continue
            previous = last_start.get(change.path)
            if previous is not None and change.end > previous:
                raise ValueError(
                    f"link updates for {change.path} must be ordered by descending offset "
                    f"(span {change.start}:{change.end} follows start {previous})"
                )
            last_start[change.path] = change.start
        return self

    def __len__(self) -> int:
        return len(self.changes)

    @property
    def is_empty(self) -> bool:
        return not self.changes

    def paths(self, kind: ChangeKind) -> list[str]:
        seen: dict[str, None] = {}
        for change in self.changes:
            if change.kind == kind:
                seen.setdefault(change.path, None)
        return list(seen)


def summarize_paths(changes: tuple[Change, ...] | list[Change]) -> tuple[list[str], list[str], list[str]]:
    """Return (created, modified, deleted) paths implied by a change sequence.

    Modified excludes files that the same changes create or delete. A file
    deleted and then created again (a replaced file, or one side of a swap)
    counts as modified; a file created and then deleted (a staging copy) does
    not appear at all.
    """
    created: dict[str, None] = {}
    modified: dict[str, None] = {}
    deleted: dict[str, None] = {}
    for change in changes:
        if isinstance(change, FileCreated):
            if change.path in deleted:
                deleted.pop(change.path)
                modified[change.path] = None
            else:
                created[change.path] = None
        elif isinstance(change, FileDeleted):
            if change.path in created:
                created.pop(change.path)
            else:
                modified.pop(change.path, None)
                deleted[change.path] = None
        elif change.path not in created:
            modified[change.path] = None
    return sorted(created), sorted(modified), sorted(deleted)


# ─────────────────────────────────────────────────────────────────────────────
# Results and reports
# ─────────────────────────────────────────────────────────────────────────────


class OperationError(BaseModel):
    """Structured error attached to an operation result."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    path: str | None = None


class OperationResult(BaseModel):
    """Outcome of executing (or simulating) a change set."""

    model_config = ConfigDict(frozen=True)

    success: bool
    dry_run: bool
    operation: OperationKind
    root: str
    created_files: list[str] = Field(default_factory=list)
    modified_files: list[str] = Field(default_factory=list)
    deleted_files: list[str] = Field(default_factory=list)
    changes: tuple[Change, ...] = ()
    errors: list[OperationError] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class BrokenLink(BaseModel):
    """A link occurrence that does not resolve."""

    model_config = ConfigDict(frozen=True)

    source: str
    link: Link
    reason: BrokenReason
    resolved_path: str | None = None


class ValidationReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool
    broken_links: list[BrokenLink] = Field(default_factory=list)
    errors: list[OperationError] = Field(default_factory=list)
    checked_files: list[str] = Field(default_factory=list)

    @property
    def broken_count(self) -> int:
        return len(self.broken_links)


class HeadingConflict(BaseModel):
    """Headings from different merged documents that produce the same slug."""

    model_config = ConfigDict(frozen=True)

    id: str  # The colliding slug
    heading: str
    files: list[str]


class OperationReport(BaseModel):
    """What the async facade returns: the result plus its validation."""

    model_config = ConfigDict(frozen=True)

    result: OperationResult
    validation: ValidationReport | None = None


def fingerprint(content: str) -> str:
    """SHA-256 of a document's text, used to detect stale snapshots."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()
