"""Link graph over a working set of parsed documents.

The graph maps canonical paths to Documents and derives, on demand, an index
from resolved targets back to the link occurrences that refer to them. The
index is never edited: ``with_documents`` and ``relocated`` return new graphs.

``resolve`` is the single resolution function used by the planner (against
hypothetical layouts) and by the validator (against real outcomes).
"""

from __future__ import annotations

import fnmatch
import logging
import os
import re
from collections import defaultdict
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Iterable, Literal, Mapping, NamedTuple
from urllib.parse import unquote

from .config import DEFAULT_LINK_STYLE, EXCLUDED_DIRS, MARKDOWN_EXTENSIONS
from .models import Document, Link
from .parser.markdown import load_document, slugify
from .paths import canonical, is_external, is_within, resolve_target

log = logging.getLogger(__name__)

ResolutionStatus = Literal[
    "resolved",
    "asset",
    "anchor",
    "external",
    "out-of-scope",
    "missing",
    "dangling-fragment",
    "empty",
]

# #L10 and #L10-L20 (also #L10-20) point at lines, not headings
LINE_ANCHOR = re.compile(r"^L\d+(?:-L?\d+)?$")


@dataclass(frozen=True)
class Resolution:
    """Where a link points under the current document set."""

    status: ResolutionStatus
    path: str | None = None
    fragment: str | None = None  # Matched heading slug, when there is one

    @property
    def is_broken(self) -> bool:
        return self.status in ("missing", "dangling-fragment")

    @property
    def is_document(self) -> bool:
        return self.status in ("resolved", "anchor", "dangling-fragment") and self.path is not None


class LinkRef(NamedTuple):
    """One link occurrence together with its resolution."""

    source: str
    link: Link
    resolution: Resolution


def heading_slug_for(doc: Document, fragment: str) -> str | None:
    """Slug of the heading in ``doc`` that ``fragment`` names, if any.

    Fragments are matched exactly, then case-insensitively, then after
    slugifying (wikilinks usually spell out the heading text).
    """
    slugs = doc.slugs
    fragment = unquote(fragment)
    for candidate in (fragment, fragment.lower(), slugify(fragment)):
        if candidate in slugs:
            return candidate
    return None


def _block_exists(doc: Document, block_id: str) -> bool:
    pattern = re.compile(rf"(?:^|\s)\^{re.escape(block_id)}[ \t]*\r?$", re.MULTILINE)
    return bool(pattern.search(doc.content))


def fragment_matches(doc: Document, fragment: str) -> bool:
    """True when ``fragment`` names a heading, line range or block in ``doc``."""
    if not fragment:
        return True
    if LINE_ANCHOR.match(fragment):
        return True
    if fragment.startswith("^"):
        return _block_exists(doc, fragment[1:])
    return heading_slug_for(doc, fragment) is not None


class LinkGraph:
    """Immutable snapshot of documents and the links between them.

    Args:
        documents: Parsed documents of the working set.
        root: Corpus root. Targets starting with '/' are relative to it and
            targets outside it are out of scope.
        exists: Predicate for non-document paths (assets, directories).
            Defaults to the real file system.
        link_style: Link mode the documents were parsed with, reused when
            re-parsing simulated content.
    """

    def __init__(
        self,
        documents: Iterable[Document] | Mapping[str, Document],
        root: str | os.PathLike[str] | None = None,
        exists: Callable[[str], bool] | None = None,
        link_style: str = DEFAULT_LINK_STYLE,
    ) -> None:
        if isinstance(documents, Mapping):
            docs = dict(documents)
        else:
            docs = {doc.path: doc for doc in documents}
        self._documents = docs
        if root is None:
            directories = [doc.directory for doc in docs.values()]
            root = os.path.commonpath(directories) if directories else os.getcwd()
        self.root = canonical(root)
        self._exists = exists or os.path.exists
        self.link_style = link_style
        self._names: dict[str, list[str]] | None = None
        self._refs: list[LinkRef] | None = None
        self._index: dict[tuple[str, str | None], list[LinkRef]] | None = None

    # ─────────────────────────────────────────────────────────────────────
    # Document set
    # ─────────────────────────────────────────────────────────────────────

    @property
    def documents(self) -> Mapping[str, Document]:
        return MappingProxyType(self._documents)

    def __contains__(self, path: object) -> bool:
        return path in self._documents

    def __len__(self) -> int:
        return len(self._documents)

    def get(self, path: str) -> Document | None:
        return self._documents.get(path)

    def exists(self, path: str) -> bool:
        return path in self._documents or self._exists(path)

    def with_documents(self, updated: Mapping[str, Document | None]) -> LinkGraph:
        """New graph with documents added, replaced or (for None) removed."""
        docs = dict(self._documents)
        removed: set[str] = set()
        for path, doc in updated.items():
            if doc is None:
                docs.pop(path, None)
                removed.add(path)
            else:
                docs[path] = doc
                removed.discard(path)
        base = self._exists

        def exists(path: str) -> bool:
            if path in docs:
                return True
            if path in removed:
                return False
            return base(path)

        return LinkGraph(docs, self.root, exists, self.link_style)

    def relocated(self, mapping: Mapping[str, str]) -> LinkGraph:
        """New graph in which each document ``old`` now lives at ``mapping[old]``."""
        updated: dict[str, Document | None] = {old: None for old in mapping}
        for old, new in mapping.items():
            doc = self._documents.get(old)
            if doc is not None:
                updated[new] = doc.model_copy(update={"path": new})
        return self.with_documents(updated)

    # ─────────────────────────────────────────────────────────────────────
    # Resolution
    # ─────────────────────────────────────────────────────────────────────

    def _lookup_name(self, name: str) -> str | None:
        if self._names is None:
            names: dict[str, list[str]] = defaultdict(list)
            for path in self._documents:
                base = os.path.basename(path)
                names[base].append(path)
                stem = os.path.splitext(base)[0]
                if stem != base:
                    names[stem].append(path)
            self._names = dict(names)
        matches = self._names.get(name, [])
        return matches[0] if len(matches) == 1 else None

    def locate(self, source_path: str, link: Link) -> str | None:
        """Path the link's target names, or None for external and empty targets.

        Only the path is located here; fragments are checked by ``resolve``.
        """
        if not link.target:
            return source_path if link.fragment is not None else None
        if is_external(link.target):
            return None

        path = resolve_target(source_path, link.target, self.root)
        if path in self._documents:
            return path
        if not os.path.splitext(path)[1]:
            with_ext = path + ".md"
            if with_ext in self._documents:
                return with_ext
        if link.style == "wikilink" and "/" not in link.target:
            found = self._lookup_name(unquote(link.target))
            if found is not None:
                return found
        return path

    def resolve(self, doc: Document, link: Link) -> Resolution:
        """Resolve one link of ``doc`` against this graph."""
        if link.target and is_external(link.target):
            return Resolution("external")
        path = self.locate(doc.path, link)
        if path is None:
            return Resolution("empty")

        target = self._documents.get(path)
        if target is None and path == doc.path:
            target = doc
        if target is not None:
            fragment = link.fragment or ""
            if not fragment_matches(target, fragment):
                return Resolution("dangling-fragment", path, link.fragment)
            slug = heading_slug_for(target, fragment) if fragment else None
            status: ResolutionStatus = "anchor" if not link.target else "resolved"
            return Resolution(status, path, slug or (link.fragment or None))

        if not is_within(path, self.root):
            return Resolution("out-of-scope", path, link.fragment)
        if self._exists(path):
            return Resolution("asset", path, link.fragment)
        return Resolution("missing", path, link.fragment)

    # ─────────────────────────────────────────────────────────────────────
    # Derived index
    # ─────────────────────────────────────────────────────────────────────

    @property
    def refs(self) -> list[LinkRef]:
        """Every link occurrence in the graph with its resolution."""
        if self._refs is None:
            refs: list[LinkRef] = []
            for path in sorted(self._documents):
                doc = self._documents[path]
                refs.extend(LinkRef(path, link, self.resolve(doc, link)) for link in doc.links)
            self._refs = refs
        return self._refs

    @property
    def index(self) -> Mapping[tuple[str, str | None], list[LinkRef]]:
        """(target path, heading slug or None) -> link occurrences resolving there."""
        if self._index is None:
            index: dict[tuple[str, str | None], list[LinkRef]] = defaultdict(list)
            for ref in self.refs:
                if ref.resolution.path is not None and ref.resolution.status != "external":
                    index[(ref.resolution.path, ref.resolution.fragment)].append(ref)
            self._index = dict(index)
        return MappingProxyType(self._index)

    def references_to(self, path: str) -> list[LinkRef]:
        """Every link pointing at ``path``, with or without a fragment."""
        return [ref for (target, _), refs in self.index.items() if target == path for ref in refs]

    def references_to_heading(self, path: str, slug: str) -> list[LinkRef]:
        return list(self.index.get((path, slug), []))

    def links_from(self, path: str) -> list[LinkRef]:
        doc = self._documents.get(path)
        if doc is None:
            return []
        return [LinkRef(path, link, self.resolve(doc, link)) for link in doc.links]

    def dependencies(self, paths: Iterable[str]) -> dict[str, set[str]]:
        """For each of ``paths``, the other members of ``paths`` it links to."""
        members = list(paths)
        member_set = set(members)
        graph: dict[str, set[str]] = {}
        for path in members:
            targets: set[str] = set()
            for ref in self.links_from(path):
                target = ref.resolution.path
                if target is None or target == path or target not in member_set:
                    continue
                if ref.resolution.status in ("resolved", "dangling-fragment"):
                    targets.add(target)
            graph[path] = targets
        return graph

    def broken_links(self, paths: Iterable[str] | None = None) -> list[LinkRef]:
        if paths is None:
            return [ref for ref in self.refs if ref.resolution.is_broken]
        broken: list[LinkRef] = []
        for path in sorted(set(paths)):
            broken.extend(ref for ref in self.links_from(path) if ref.resolution.is_broken)
        return broken


def iter_markdown_files(
    root: str | os.PathLike[str],
    extensions: Iterable[str] = MARKDOWN_EXTENSIONS,
    exclude: Iterable[str] = (),
) -> list[str]:
    """Markdown files under ``root``, skipping excluded directories and patterns."""
    root = canonical(root)
    suffixes = tuple(ext.lower() for ext in extensions)
    patterns = list(exclude)
    found: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in EXCLUDED_DIRS)
        for filename in sorted(filenames):
            if not filename.lower().endswith(suffixes):
                continue
            path = os.path.join(dirpath, filename)
            rel = os.path.relpath(path, root).replace(os.sep, "/")
            if any(fnmatch.fnmatch(rel, pattern) for pattern in patterns):
                continue
            found.append(canonical(path))
    return found


def build_link_graph(
    root: str | os.PathLike[str],
    *,
    extensions: Iterable[str] = MARKDOWN_EXTENSIONS,
    exclude: Iterable[str] = (),
    link_style: str = DEFAULT_LINK_STYLE,
    extra_paths: Iterable[str | os.PathLike[str]] = (),
) -> LinkGraph:
    """Load every markdown file under ``root`` into a LinkGraph.

    Raises:
        ParseError: If any document cannot be read or parsed.
    """
    paths = iter_markdown_files(root, extensions, exclude)
    seen = set(paths)
    for extra in extra_paths:
        path = canonical(extra)
        if path not in seen:
            paths.append(path)
            seen.add(path)

    documents = [load_document(path, link_style=link_style) for path in paths]
    log.debug("Loaded %d documents from %s", len(documents), root)
    return LinkGraph(documents, root, link_style=link_style)
