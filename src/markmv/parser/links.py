"""Link recognition and rendering for every supported link style.

Recognised syntaxes:
- inline markdown    ``[text](target#fragment "title")``, ``[text](<path with spaces.md>)``
- reference-style    ``[text][ref]`` with ``[ref]: target#fragment "title"``
- wikilinks          ``[[target#fragment|alias]]`` and embeds ``![[target]]``
- image embeds       ``![alt](target)``
- @-mentions         ``@./path/to/file.md`` (Claude-style imports)

Only the target-bearing span is a Link: for reference-style links that is the
definition line, since that is where the target is written.
"""

from __future__ import annotations

import re
from bisect import bisect_right
from typing import Iterable

from ..models import Link, LinkStyle

# Link modes accepted by parse_document and the styles each one recognises
LINK_MODES: dict[str, frozenset[LinkStyle]] = {
    "markdown": frozenset({"inline", "reference", "image"}),
    "wikilink": frozenset({"wikilink"}),
    "claude": frozenset({"claude"}),
    "combined": frozenset({"inline", "reference", "image", "wikilink", "claude"}),
}

_TITLE = r"""(?P<title>[ \t]+(?:"[^"\n]*"|'[^'\n]*'))?"""

# Link text may hold one level of brackets: badges and [see [1]](x.md)
_TEXT = r"(?P<text>(?:[^\[\]\n]|\[[^\[\]\n]*\])*)"

# <angle bracketed> destinations, or bare ones with balanced parentheses
_DEST = r"(?:<(?P<angle>[^<>\n]*)>|(?P<dest>(?:[^()\s]|\([^()\s]*\))*))"

INLINE_PATTERN = re.compile(r"(?<![!\\])\[" + _TEXT + r"\]\(" + _DEST + _TITLE + r"\)")

IMAGE_PATTERN = re.compile(r"(?<!\\)!\[" + _TEXT + r"\]\(" + _DEST + _TITLE + r"\)")

WIKILINK_PATTERN = re.compile(
    r"(?P<bang>!?)\[\[(?P<target>[^\[\]|#\n]*)(?:#(?P<fragment>[^\[\]|\n]*))?"
    r"(?:\|(?P<alias>[^\[\]\n]*))?\]\]"
)

REFERENCE_PATTERN = re.compile(
    r"^[ ]{0,3}\[(?P<text>[^\]\n]+)\]:(?P<gap>[ \t]*)(?:<(?P<angle>[^<>\n]*)>|(?P<dest>[^\s<>]+))"
    r"""(?P<title>[ \t]+(?:"[^"\n]*"|'[^'\n]*'|\([^)\n]*\)))?[ \t]*\r?$""",
    re.MULTILINE,
)

# Path-prefixed mentions take any non-space path; bare mentions must name a
# markdown file so that @handles and e-mail addresses are not picked up.
CLAUDE_PATTERN = re.compile(
    r"(?<![\w@/.`\[])@(?P<dest>(?:~/|\.{1,2}/|/)[^\s`()\[\]<>\"']+"
    r"|[\w.-]+(?:/[\w.-]+)*\.(?:md|markdown|mdx)(?:#[\w-]*)?)"
)

_TRAILING_PUNCTUATION = ".,;:!?"


def _split_destination(dest: str) -> tuple[str, str | None]:
    target, sep, fragment = dest.partition("#")
    return target, (fragment if sep else None)


def _line_of(line_starts: list[int], offset: int) -> int:
    return bisect_right(line_starts, offset)


def _destination(match: re.Match[str], content: str) -> tuple[str, bool, int]:
    """(destination text, angle bracketed, end offset of the destination)."""
    if match.group("angle") is not None:
        return content[match.start("angle") : match.end("angle")], True, match.end("angle") + 1
    return content[match.start("dest") : match.end("dest")], False, match.end("dest")


def _scan_inline(masked: str, content: str, line_starts: list[int], style: LinkStyle) -> Iterable[Link]:
    pattern = IMAGE_PATTERN if style == "image" else INLINE_PATTERN
    for match in pattern.finditer(masked):
        start, end = match.span()
        dest, angle, _ = _destination(match, content)
        target, fragment = _split_destination(dest)
        title = match.group("title") or ""
        yield Link(
            style=style,
            raw=content[start:end],
            target=target,
            fragment=fragment,
            text=content[match.start("text") : match.end("text")],
            title=content[match.start("title") : match.end("title")] if title else "",
            angle=angle,
            start=start,
            end=end,
            line=_line_of(line_starts, start),
        )


def _scan_wikilinks(masked: str, content: str, line_starts: list[int]) -> Iterable[Link]:
    for match in WIKILINK_PATTERN.finditer(masked):
        start, end = match.span()
        raw = content[start:end]
        fragment = match.group("fragment")
        alias = match.group("alias")
        yield Link(
            style="wikilink",
            raw=raw,
            target=content[match.start("target") : match.end("target")],
            fragment=content[match.start("fragment") : match.end("fragment")] if fragment is not None else None,
            text=content[match.start("alias") : match.end("alias")] if alias is not None else None,
            embed=bool(match.group("bang")),
            start=start,
            end=end,
            line=_line_of(line_starts, start),
        )


def _scan_references(masked: str, content: str, line_starts: list[int]) -> Iterable[Link]:
    for match in REFERENCE_PATTERN.finditer(masked):
        start = match.start("text") - 1
        dest, angle, dest_end = _destination(match, content)
        end = match.end("title") if match.group("title") else dest_end
        target, fragment = _split_destination(dest)
        yield Link(
            style="reference",
            raw=content[start:end],
            target=target,
            fragment=fragment,
            text=content[match.start("text") : match.end("text")],
            title=content[match.start("title") : match.end("title")] if match.group("title") else "",
            gap=match.group("gap"),
            angle=angle,
            start=start,
            end=end,
            line=_line_of(line_starts, start),
        )


def _scan_mentions(masked: str, content: str, line_starts: list[int]) -> Iterable[Link]:
    for match in CLAUDE_PATTERN.finditer(masked):
        dest = match.group("dest").rstrip(_TRAILING_PUNCTUATION)
        if not dest or dest in ("~/", "./", "../", "/"):
            continue
        start = match.start()
        end = match.start("dest") + len(dest)
        target, fragment = _split_destination(content[match.start("dest") : end])
        yield Link(
            style="claude",
            raw=content[start:end],
            target=target,
            fragment=fragment,
            start=start,
            end=end,
            line=_line_of(line_starts, start),
        )


def scan_links(
    masked: str,
    content: str,
    line_starts: list[int],
    styles: frozenset[LinkStyle],
) -> list[Link]:
    """Find every link in ``masked`` and read its raw text from ``content``.

    ``masked`` must have the same length as ``content`` with code, comments
    and frontmatter blanked out. Overlapping matches keep the earliest one,
    except that a link written inside an inline link's text (a badge) is
    kept alongside it.
    """
    found: list[Link] = []
    if "wikilink" in styles:
        found.extend(_scan_wikilinks(masked, content, line_starts))
    if "image" in styles:
        found.extend(_scan_inline(masked, content, line_starts, "image"))
    if "inline" in styles:
        found.extend(_scan_inline(masked, content, line_starts, "inline"))
    if "reference" in styles:
        found.extend(_scan_references(masked, content, line_starts))
    if "claude" in styles:
        found.extend(_scan_mentions(masked, content, line_starts))

    found.sort(key=lambda link: (link.start, -link.end))
    links: list[Link] = []
    outer: Link | None = None
    for link in found:
        if outer is not None and link.start < outer.end:
            if outer.style == "inline" and _within_text(outer, link):
                links.append(link)
            continue
        links.append(link)
        outer = link
    return links


def _within_text(outer: Link, link: Link) -> bool:
    text_start = outer.start + 1
    return text_start <= link.start and link.end <= text_start + len(outer.text or "")


def render_link(link: Link) -> str:
    """Render a link from its fields."""
    dest = f"<{link.destination}>" if link.angle else link.destination
    if link.style == "inline":
        return f"[{link.text or ''}]({dest}{link.title})"
    if link.style == "image":
        return f"![{link.text or ''}]({dest}{link.title})"
    if link.style == "wikilink":
        alias = f"|{link.text}" if link.text is not None else ""
        return f"{'!' if link.embed else ''}[[{dest}{alias}]]"
    if link.style == "reference":
        return f"[{link.text}]:{link.gap}{dest}{link.title}"
    return f"@{dest}"


def retarget(link: Link, target: str, fragment: str | None) -> str:
    """Raw text of ``link`` pointing at a new target and fragment."""
    return render_link(link.model_copy(update={"target": target, "fragment": fragment}))
