"""Link style and path-form converters.

Both conversions keep what a link resolves to and are idempotent: converting
an already converted link is a no-op.
"""

from __future__ import annotations

import os
from urllib.parse import unquote

from ..models import Document, Link
from ..parser.links import CLAUDE_PATTERN
from ..parser.markdown import slugify
from ..paths import encode_target, is_external, relative_target, root_relative

LINK_STYLES = ("markdown", "wikilink", "claude", "combined")
PATH_RESOLUTIONS = ("absolute", "relative")

_TRAILING_PUNCTUATION = ".,;:!?"
_WIKILINK_FORBIDDEN = set("[]|#")


def _is_markdown_file(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in (".md", ".markdown", ".mdx")


def _display_name(target_path: str | None, link: Link) -> str:
    if target_path:
        return os.path.splitext(os.path.basename(target_path))[0]
    return os.path.splitext(os.path.basename(unquote(link.target)))[0] or link.target


def _relative(doc: Document, target_path: str, dot_prefix: bool = False) -> str:
    return relative_target(doc.path, target_path, dot_prefix=dot_prefix)


def _mention_parses(doc: Document, link: Link, dest: str) -> bool:
    """True when ``@dest`` in place of ``link`` would be read back as the same mention."""
    before = doc.content[link.start - 1] if link.start > 0 else ""
    after = doc.content[link.end] if link.end < len(doc.content) else ""
    rendered = f"{before}@{dest}{after}"
    for match in CLAUDE_PATTERN.finditer(rendered):
        found = match.group("dest").rstrip(_TRAILING_PUNCTUATION)
        if match.start() == len(before) and found == dest:
            return True
    return False


def _to_markdown(doc: Document, link: Link, target_path: str | None) -> Link:
    if link.style == "claude":
        return link.model_copy(
            update={"style": "inline", "target": encode_target(link.target), "text": _display_name(target_path, link)}
        )
    if link.style != "wikilink":
        return link

    is_document = target_path is None or _is_markdown_file(target_path)
    if link.embed and is_document:
        # Transclusion has no markdown equivalent
        return link

    if target_path:
        target = _relative(doc, target_path)
    else:
        target = unquote(link.target)
        if not os.path.splitext(target)[1]:
            target += ".md"

    fragment = link.fragment
    if fragment and any(ch.isspace() for ch in fragment):
        fragment = slugify(fragment)
    text = link.text if link.text is not None else link.target
    return link.model_copy(
        update={
            "style": "image" if link.embed else "inline",
            "target": encode_target(target),
            "fragment": fragment,
            "text": text,
            "embed": False,
            "title": "",
        }
    )


def _to_wikilink(doc: Document, link: Link, target_path: str | None) -> Link:
    if link.style not in ("inline", "image", "claude") or target_path is None:
        return link
    is_document = _is_markdown_file(target_path)
    if is_document == (link.style == "image"):
        return link

    target = _relative(doc, target_path)
    if is_document:
        target = os.path.splitext(target)[0]
    if set(target) & _WIKILINK_FORBIDDEN:
        return link
    if link.fragment and set(link.fragment) & _WIKILINK_FORBIDDEN:
        return link

    text = None
    if link.style == "inline" and link.text and link.text not in (target, os.path.basename(target)):
        if set(link.text) & set("[]|"):
            return link
        text = link.text
    return link.model_copy(
        update={
            "style": "wikilink",
            "target": target,
            "text": text,
            "embed": link.style == "image",
            "title": "",
            "angle": False,
        }
    )


def _to_claude(doc: Document, link: Link, target_path: str | None) -> Link:
    if link.style not in ("inline", "wikilink") or link.embed or target_path is None:
        return link
    if link.style == "inline" and "[" in (link.text or ""):
        # Mentions carry no text, so a badge would lose its image
        return link
    if not _is_markdown_file(target_path):
        return link

    target = unquote(link.target) if link.style == "inline" and link.target.startswith(("/", "~/")) else None
    if target is None:
        target = _relative(doc, target_path, dot_prefix=True)
    fragment = link.fragment
    dest = target if fragment is None else f"{target}#{fragment}"
    if not _mention_parses(doc, link, dest):
        return link
    return link.model_copy(
        update={"style": "claude", "target": target, "text": None, "title": "", "embed": False, "angle": False}
    )


def convert_style(doc: Document, link: Link, target_path: str | None, link_style: str) -> Link:
    """Convert ``link`` into the syntax of ``link_style``.

    ``target_path`` is the resolved file the link points at, or None when it
    does not resolve to an existing file. Reference definitions keep their
    style; "combined" changes nothing.
    """
    if link.style == "reference" or link_style == "combined":
        return link
    if link.target and is_external(link.target):
        return link
    if not link.target:
        return link
    if link_style == "markdown":
        return _to_markdown(doc, link, target_path)
    if link_style == "wikilink":
        return _to_wikilink(doc, link, target_path)
    if link_style == "claude":
        return _to_claude(doc, link, target_path)
    return link


def convert_path(doc: Document, link: Link, target_path: str | None, root: str, path_resolution: str) -> Link:
    """Switch the written target between root-relative and relative forms.

    ``absolute`` writes ``/path/from/root.md``; ``relative`` rewrites only
    root- or home-relative targets. Wikilinks and pure anchors are left alone.
    """
    if link.style == "wikilink" or not link.target or target_path is None:
        return link
    if is_external(link.target):
        return link

    written = link.target
    absolute = written.startswith(("/", "~/"))
    if path_resolution == "absolute":
        if absolute:
            return link
        new = root_relative(target_path, root)
        if new is None:
            return link
    elif path_resolution == "relative":
        if not absolute:
            return link
        new = _relative(doc, target_path, dot_prefix=link.style == "claude")
    else:
        return link

    if not os.path.splitext(unquote(written))[1] and os.path.splitext(new)[1] == ".md":
        new = os.path.splitext(new)[0]
    if link.style != "claude":
        if not link.angle:
            new = encode_target(new)
    elif " " in new:
        return link
    return link.model_copy(update={"target": new})
