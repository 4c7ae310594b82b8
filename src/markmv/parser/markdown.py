"""Markdown document parsing: frontmatter, headings, code regions and links."""

from __future__ import annotations

import os
import re

import frontmatter
import yaml
from markdown_it import MarkdownIt

from ..errors import ParseError
from ..models import Document, Heading
from ..paths import canonical
from .links import LINK_MODES, scan_links

# Frontmatter delimiter detection and YAML loading
_YAML = frontmatter.YAMLHandler()

HTML_COMMENT_PATTERN = re.compile(r"<!--.*?-->", re.DOTALL)

# Backtick code spans, which may wrap lines inside a paragraph but not cross
# a blank line
CODE_SPAN_PATTERN = re.compile(r"(?<!`)(`+)(?!`)(?:[^\n]|\n(?![ \t]*\n))+?(?<!`)\1(?!`)")

_INLINE_LINK = re.compile(r"!?\[([^\[\]]*)\]\([^)]*\)")
_WIKILINK = re.compile(r"\[\[([^\[\]|]*)(?:\|([^\[\]]*))?\]\]")
_HTML_TAG = re.compile(r"<[^>]+>")

# Cached parser instance
_md: MarkdownIt | None = None


def _get_markdown() -> MarkdownIt:
    global _md
    if _md is None:
        _md = MarkdownIt("commonmark")
    return _md


def slugify(text: str) -> str:
    """Turn heading text into a fragment identifier.

    Inline markup is stripped, the text is lowercased, characters other than
    word characters, whitespace and hyphens are removed, and whitespace runs
    become single hyphens.
    """
    text = _INLINE_LINK.sub(r"\1", text)
    text = _WIKILINK.sub(lambda m: m.group(2) or m.group(1), text)
    text = _HTML_TAG.sub("", text)
    text = text.replace("`", "").replace("*", "")
    slug = text.strip().lower()
    slug = re.sub(r"[^\w\s-]", "", slug)
    return re.sub(r"\s+", "-", slug)


def _unique_slug(base: str, used: set[str], counts: dict[str, int]) -> str:
    count = counts.get(base, 0)
    slug = base if count == 0 else f"{base}-{count}"
    while slug in used:
        count += 1
        slug = f"{base}-{count}"
    counts[base] = count + 1
    used.add(slug)
    return slug


def line_starts(content: str) -> list[int]:
    """Offsets at which each line of ``content`` begins."""
    return [0] + [match.end() for match in re.finditer(r"\n", content)]


def _blank(text: str) -> str:
    return re.sub(r"[^\n]", " ", text)


def _mask(content: str, spans: list[tuple[int, int]]) -> str:
    if not spans:
        return content
    parts: list[str] = []
    position = 0
    for start, end in sorted(spans):
        if end <= position:
            continue
        start = max(start, position)
        parts.append(content[position:start])
        parts.append(_blank(content[start:end]))
        position = end
    parts.append(content[position:])
    return "".join(parts)


def _frontmatter(path: str, content: str) -> tuple[dict, int]:
    if not _YAML.detect(content):
        return {}, 0
    try:
        raw, body = _YAML.split(content)
    except ValueError:
        # Opening delimiter without a closing one
        return {}, 0

    try:
        data = _YAML.load(raw) if raw.strip() else {}
    except yaml.YAMLError as e:
        raise ParseError(path, f"Invalid YAML frontmatter: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        # A thematic break followed by prose, not a metadata block
        return {}, 0

    body_start = len(content) - len(body)
    # The closing delimiter's line ending belongs to the frontmatter
    if content.startswith("\n", body_start) and content[body_start - 1] != "\n":
        body_start += 1
    return data, body_start


def parse_document(
    path: str | os.PathLike[str],
    content: str,
    *,
    link_style: str = "combined",
    modified_at: float | None = None,
) -> Document:
    """Parse markdown text into an immutable Document.

    Links inside fenced or indented code, inline code spans, HTML comments and
    YAML frontmatter are not links.

    Args:
        path: File path; stored in canonical absolute form.
        content: Full file text.
        link_style: Which link syntaxes to recognise (see LINK_MODES).
        modified_at: Modification time captured when the file was read.

    Raises:
        ParseError: If the frontmatter is not valid YAML or the mode is unknown.
    """
    doc_path = canonical(path)
    styles = LINK_MODES.get(link_style)
    if styles is None:
        raise ParseError(doc_path, f"Unknown link style '{link_style}'")

    metadata, body_start = _frontmatter(doc_path, content)
    starts = line_starts(content)

    def offset_of(line: int) -> int:
        return starts[line] if line < len(starts) else len(content)

    # Blank the frontmatter so markdown-it keeps line numbers aligned
    tokens = _get_markdown().parse(_mask(content, [(0, body_start)]))

    excluded: list[tuple[int, int]] = [(0, body_start)] if body_start else []
    code_blocks: list[tuple[int, int]] = []
    headings: list[Heading] = []
    used: set[str] = set()
    counts: dict[str, int] = {}

    for index, token in enumerate(tokens):
        if token.type in ("fence", "code_block") and token.map:
            first, last = token.map
            code_blocks.append((first, last))
            excluded.append((offset_of(first), offset_of(last)))
        elif token.type == "heading_open" and token.map:
            inline = tokens[index + 1]
            text = inline.content.strip()
            base = slugify(text)
            if not base:
                continue
            headings.append(
                Heading(
                    level=int(token.tag[1:]),
                    text=text,
                    slug=_unique_slug(base, used, counts),
                    offset=offset_of(token.map[0]),
                    line=token.map[0] + 1,
                )
            )

    excluded.extend(match.span() for match in HTML_COMMENT_PATTERN.finditer(content))
    masked = _mask(content, excluded)
    masked = _mask(masked, [match.span() for match in CODE_SPAN_PATTERN.finditer(masked)])

    return Document(
        path=doc_path,
        content=content,
        headings=tuple(headings),
        links=tuple(scan_links(masked, content, starts, styles)),
        metadata=metadata,
        frontmatter_end=body_start,
        code_blocks=tuple(code_blocks),
        modified_at=modified_at,
    )


def read_text(path: str | os.PathLike[str]) -> str:
    """Read a file as UTF-8 keeping its line endings untouched."""
    with open(path, encoding="utf-8", newline="") as handle:
        return handle.read()


def load_document(path: str | os.PathLike[str], *, link_style: str = "combined") -> Document:
    """Read and parse a markdown file.

    Raises:
        ParseError: If the file is missing, unreadable or not valid UTF-8.
    """
    doc_path = canonical(path)
    if not os.path.exists(doc_path):
        raise ParseError(doc_path, "File does not exist")
    if not os.path.isfile(doc_path):
        raise ParseError(doc_path, "Path is not a file")

    try:
        content = read_text(doc_path)
        modified_at = os.stat(doc_path).st_mtime
    except UnicodeDecodeError as e:
        raise ParseError(doc_path, f"Not valid UTF-8: {e}") from e
    except OSError as e:
        raise ParseError(doc_path, f"Cannot read file: {e}") from e

    return parse_document(doc_path, content, link_style=link_style, modified_at=modified_at)
