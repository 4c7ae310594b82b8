"""Table-of-contents and split index rendering."""

from __future__ import annotations

from typing import Iterable, Sequence

from .models import Document, Heading


def render_toc(
    headings: Iterable[Heading],
    *,
    min_depth: int = 1,
    max_depth: int = 6,
    target: str = "",
) -> str:
    """Render headings as a nested markdown list of anchor links.

    Args:
        headings: Headings in document order.
        min_depth: Shallowest heading level to include.
        max_depth: Deepest heading level to include.
        target: Path prefix for the links; empty for same-document anchors.

    Returns:
        The list, one entry per line, or an empty string if nothing matched.
    """
    selected = [h for h in headings if min_depth <= h.level <= max_depth]
    if not selected:
        return ""

    top = min(h.level for h in selected)
    lines = []
    for heading in selected:
        indent = "  " * (heading.level - top)
        lines.append(f"{indent}- [{heading.text}]({target}#{heading.slug})")
    return "\n".join(lines) + "\n"


def document_title(doc: Document) -> str:
    """Frontmatter title, else the first top-level heading, else the file stem."""
    title = doc.metadata.get("title")
    if isinstance(title, str) and title.strip():
        return title.strip()
    if doc.headings:
        top = min(h.level for h in doc.headings)
        return next(h.text for h in doc.headings if h.level == top)
    return doc.stem


def render_split_index(doc: Document, parts: Sequence[tuple[str, str, Sequence[Heading]]]) -> str:
    """Content for a split source kept as an index of its parts.

    Each part is listed with the headings one level below its own first
    heading nested beneath it. The original frontmatter is preserved verbatim.

    Args:
        doc: The document being split.
        parts: (title, link target, headings of the part) for each part, in order.
    """
    frontmatter = doc.content[: doc.frontmatter_end]
    lines = []
    for title, target, headings in parts:
        lines.append(f"- [{title}]({target})")
        if headings:
            level = headings[0].level + 1
            toc = render_toc(headings[1:], min_depth=level, max_depth=level, target=target)
            lines.extend(f"  {entry}" for entry in toc.splitlines())
    return f"{frontmatter}# {document_title(doc)}\n\n" + "\n".join(lines) + "\n"
