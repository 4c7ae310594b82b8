"""Markdown parsing with frontmatter, heading and link extraction."""

from ..errors import ParseError
from .links import LINK_MODES, render_link, retarget, scan_links
from .markdown import load_document, parse_document, read_text, slugify

__all__ = [
    "parse_document",
    "load_document",
    "read_text",
    "slugify",
    "ParseError",
    "LINK_MODES",
    "scan_links",
    "render_link",
    "retarget",
]
