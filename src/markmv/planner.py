"""Operation planning: turn a requested refactoring into a ChangeSet.

Planners read only the LinkGraph snapshot they are given and never touch the
disk. A plan may leave links broken; finding those is the validator's job.
Planners raise PlanError for structural problems only: collisions, cycles,
unresolved merge conflicts and unsupported strategy parameters.
"""

from __future__ import annotations

import logging
import os
from collections import Counter
from typing import Any, Iterable, Mapping, Sequence

import frontmatter

from .config import (
    DEFAULT_MERGE_STRATEGY,
    DEFAULT_ORDER_STRATEGY,
    DEFAULT_SPLIT_STRATEGY,
    JOIN_SEPARATOR,
    MERGE_SEPARATOR,
    MERGED_LIST_KEYS,
    STAGING_SUFFIX,
)
from .errors import (
    DestinationCollisionError,
    ErrorCode,
    PlanError,
    SourceNotFoundError,
    UnsupportedStrategyError,
)
from .graph import LinkGraph
from .models import (
    Change,
    ChangeSet,
    Document,
    FileCreated,
    FileDeleted,
    FileModified,
    Link,
    LinkUpdated,
    OperationKind,
    fingerprint,
)
from .parser.links import render_link, retarget
from .parser.markdown import parse_document, slugify
from .paths import canonical, encode_target, relative_target, rewrite_target
from .strategies.convert import LINK_STYLES, PATH_RESOLUTIONS, convert_path, convert_style
from .strategies.merge import rename_heading_line, resolve_conflicts
from .strategies.order import order_documents
from .strategies.split import document_lines, get_split_strategy, section_filename
from .toc import render_split_index

log = logging.getLogger(__name__)

# Resolution statuses whose target is an existing file that links may follow
_FOLLOWED = ("resolved", "dangling-fragment", "asset", "out-of-scope")


# ─────────────────────────────────────────────────────────────────────────────
# Shared helpers
# ─────────────────────────────────────────────────────────────────────────────


def _require(graph: LinkGraph, path: str | os.PathLike[str]) -> Document:
    doc = graph.get(canonical(path))
    if doc is None:
        raise SourceNotFoundError(canonical(path))
    return doc


def _followed_target(graph: LinkGraph, doc: Document, link: Link) -> str | None:
    """Existing file a link points at, or None when there is nothing to follow."""
    if not link.target:
        return None
    resolution = graph.resolve(doc, link)
    if resolution.status not in _FOLLOWED or resolution.path is None:
        return None
    if resolution.status == "out-of-scope" and not graph.exists(resolution.path):
        return None
    return resolution.path


def _target_text(after: LinkGraph, link: Link, from_path: str, to_path: str) -> str:
    """How ``link`` written in ``from_path`` should name ``to_path``.

    Bare wikilink names stay bare when they still resolve uniquely.
    """
    if link.style == "wikilink" and link.target and "/" not in link.target:
        name = os.path.basename(to_path)
        if not os.path.splitext(link.target)[1]:
            name = os.path.splitext(name)[0]
        candidate = link.model_copy(update={"target": name})
        if after.locate(from_path, candidate) == to_path:
            return name

    text = rewrite_target(link.target, from_path, to_path, after.root)
    if link.style in ("inline", "image", "reference") and not link.angle and " " in text:
        text = encode_target(text)
    return text


def _updates(
    path: str,
    edits: Iterable[tuple[Link, str]],
    offset: int = 0,
    line_offset: int = 0,
) -> list[LinkUpdated]:
    """LinkUpdated changes for one file, ordered by descending start offset.

    ``offset`` and ``line_offset`` translate positions of the parsed document
    into positions of the file the change applies to. An edit to a link that
    sits inside another edited link's text is folded into the outer edit.
    """
    folded: list[tuple[Link, str]] = []
    for link, new_value in sorted(edits, key=lambda edit: (edit[0].start, -edit[0].end)):
        if folded and link.end <= folded[-1][0].end:
            outer, outer_value = folded[-1]
            folded[-1] = (outer, outer_value.replace(link.raw, new_value, 1))
            continue
        folded.append((link, new_value))
    return [
        LinkUpdated(
            path=path,
            start=link.start + offset,
            end=link.end + offset,
            old_value=link.raw,
            new_value=new_value,
            line=link.line + line_offset,
        )
        for link, new_value in reversed(folded)
    ]


def _change_set(
    operation: OperationKind,
    graph: LinkGraph,
    changes: Sequence[Change],
    snapshot_paths: Iterable[str],
    warnings: Sequence[str] = (),
) -> ChangeSet:
    fingerprints = {}
    for path in sorted(set(snapshot_paths)):
        doc = graph.get(path)
        if doc is not None:
            fingerprints[path] = fingerprint(doc.content)
    change_set = ChangeSet(
        operation=operation,
        root=graph.root,
        changes=tuple(changes),
        fingerprints=fingerprints,
        warnings=tuple(warnings),
    )
    log.debug("Planned %s: %d changes over %d snapshot files", operation, len(change_set), len(fingerprints))
    return change_set


# ─────────────────────────────────────────────────────────────────────────────
# Move
# ─────────────────────────────────────────────────────────────────────────────


def _validate_moves(
    graph: LinkGraph,
    pairs: Iterable[tuple[str | os.PathLike[str], str | os.PathLike[str]]],
    overwrite: bool,
) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for source, destination in pairs:
        src, dst = canonical(source), canonical(destination)
        if src not in graph:
            raise SourceNotFoundError(src)
        if src == dst:
            raise PlanError(ErrorCode.INVALID_ARGUMENT, f"Source and destination are the same: {src}")
        if src in mapping:
            raise PlanError(ErrorCode.INVALID_ARGUMENT, f"Source is moved more than once: {src}")
        mapping[src] = dst

    if not mapping:
        raise PlanError(ErrorCode.INVALID_ARGUMENT, "Nothing to move")

    for dst, count in Counter(mapping.values()).items():
        if count > 1:
            sources = sorted(src for src, target in mapping.items() if target == dst)
            raise DestinationCollisionError(
                dst,
                f"{count} sources would be moved to {dst}: {', '.join(sources)}",
                ErrorCode.DUPLICATE_DESTINATION,
            )

    for dst in mapping.values():
        if dst in mapping:
            # Swap or chain: the destination is vacated by its own move
            continue
        if os.path.isdir(dst):
            raise DestinationCollisionError(dst, f"Destination is a directory: {dst}")
        if graph.exists(dst) and not overwrite:
            raise DestinationCollisionError(dst, f"Destination already exists: {dst} (use overwrite to replace it)")
    return mapping


def _staging_path(graph: LinkGraph, path: str, taken: set[str]) -> str:
    candidate = path + STAGING_SUFFIX
    number = 2
    while graph.exists(candidate) or candidate in taken:
        candidate = f"{path}{STAGING_SUFFIX}-{number}"
        number += 1
    taken.add(candidate)
    return candidate


def plan_move(
    graph: LinkGraph,
    pairs: Iterable[tuple[str | os.PathLike[str], str | os.PathLike[str]]],
    *,
    overwrite: bool = False,
) -> ChangeSet:
    """Plan moving documents, rewriting every link that points into the move set.

    Links are rewritten relative to each referring file's new location, so
    files moving together keep their mutual links. A destination that is
    itself a moving source (a swap or chain) is applied in an order that
    captures every file before it is replaced; cycles go through a staging
    copy.

    Args:
        graph: Snapshot of the working set.
        pairs: (source, destination) paths.
        overwrite: Replace destinations that exist outside the move set.

    Raises:
        SourceNotFoundError: A source is not a document in the graph.
        DestinationCollisionError: Duplicate or occupied destinations.
    """
    mapping = _validate_moves(graph, pairs, overwrite)
    replaced = {dst for dst in mapping.values() if dst not in mapping and graph.exists(dst)}
    after = graph.relocated(mapping)

    updates: dict[str, list[LinkUpdated]] = {}
    for path in sorted(graph.documents):
        if path in replaced:
            continue
        doc = graph.documents[path]
        new_source = mapping.get(path, path)
        edits: list[tuple[Link, str]] = []
        for link in doc.links:
            old_target = _followed_target(graph, doc, link)
            if old_target is None:
                continue
            new_target = mapping.get(old_target, old_target)
            if after.locate(new_source, link) == new_target:
                continue
            new_raw = retarget(link, _target_text(after, link, new_source, new_target), link.fragment)
            if new_raw != link.raw:
                edits.append((link, new_raw))
        if edits:
            updates[new_source] = _updates(new_source, edits)

    changes: list[Change] = []
    for path in sorted(updates):
        if path not in mapping.values():
            changes.extend(updates[path])

    pending = dict(sorted(mapping.items()))
    staged: dict[str, str] = {}
    taken: set[str] = set()
    while pending:
        blocking = {src for src in pending if src not in staged}
        ready = next((src for src, dst in pending.items() if dst not in blocking), None)
        if ready is None:
            # Every remaining move waits on another: break a cycle via staging
            destinations = set(pending.values())
            src = next(src for src in pending if src not in staged and src in destinations)
            staged[src] = _staging_path(graph, src, taken)
            changes.append(FileCreated(path=staged[src], content=graph.documents[src].content))
            changes.append(FileDeleted(path=src))
            continue

        dst = pending.pop(ready)
        if dst in replaced:
            changes.append(FileDeleted(path=dst))
        changes.append(FileCreated(path=dst, content=graph.documents[ready].content))
        changes.extend(updates.get(dst, []))
        changes.append(FileDeleted(path=staged.get(ready, ready)))

    warnings = [f"Replacing existing file {path}" for path in sorted(replaced)]
    snapshot = set(mapping) | set(updates) | replaced
    return _change_set("move", graph, changes, snapshot, warnings)


# ─────────────────────────────────────────────────────────────────────────────
# Split
# ─────────────────────────────────────────────────────────────────────────────


def plan_split(
    graph: LinkGraph,
    source: str | os.PathLike[str],
    strategy: str = DEFAULT_SPLIT_STRATEGY,
    *,
    output_dir: str | os.PathLike[str] | None = None,
    keep_index: bool = True,
    **params: Any,
) -> ChangeSet:
    """Plan splitting one document into parts.

    Anchor links whose heading moves to another part become cross-file links,
    and links elsewhere in the corpus that point at a heading of the source
    are redirected to the part that now owns it.

    Args:
        graph: Snapshot of the working set.
        source: Document to split.
        strategy: headers, size, manual or lines.
        output_dir: Directory for the parts (defaults to the source's).
        keep_index: Replace the source with an index of its parts instead of
            deleting it.
        **params: Strategy parameters (header_level, max_size, max_lines,
            markers, lines).

    Raises:
        SourceNotFoundError: The source is not in the graph.
        UnsupportedStrategyError: Unknown strategy or bad parameters.
        PlanError: The strategy finds nothing to split on.
    """
    doc = _require(graph, source)
    sections = get_split_strategy(strategy, **params).split(doc)
    if not sections:
        raise PlanError(ErrorCode.INVALID_ARGUMENT, f"{doc.path}: nothing to split")

    out_dir = canonical(output_dir) if output_dir else doc.directory
    extension = os.path.splitext(doc.path)[1] or ".md"
    lines = document_lines(doc)
    line_offsets = [0]
    for line in lines:
        line_offsets.append(line_offsets[-1] + len(line))

    # Output paths, never reusing the source or an existing file
    taken = {doc.path}
    part_paths: list[str] = []
    for i, section in enumerate(sections):
        stem = section_filename(section.title, i + 1)
        candidate = os.path.join(out_dir, stem + extension)
        number = 2
        while candidate in taken or graph.exists(candidate):
            candidate = os.path.join(out_dir, f"{stem}-{number}{extension}")
            number += 1
        taken.add(candidate)
        part_paths.append(candidate)

    moved_frontmatter = doc.content[: doc.frontmatter_end] if not keep_index else ""
    parts: list[Document] = []
    prefixes: list[str] = []
    for i, section in enumerate(sections):
        prefix = moved_frontmatter if i == 0 else ""
        body = "".join(lines[section.start_line : section.end_line])
        prefixes.append(prefix)
        parts.append(parse_document(part_paths[i], prefix + body, link_style=graph.link_style))

    def owner_of(line: int) -> int | None:
        for i, section in enumerate(sections):
            if section.start_line <= line < section.end_line:
                return i
        return None

    # Old heading slug -> (part index, slug inside that part)
    anchors: dict[str, tuple[int, str]] = {}
    for i, section in enumerate(sections):
        inside = [h for h in doc.headings if section.start_line <= h.line - 1 < section.end_line]
        for old, new in zip(inside, parts[i].headings):
            anchors[old.slug] = (i, new.slug)

    index_doc: Document | None = None
    index_content = ""
    if keep_index:
        entries = [
            (
                section.title or os.path.splitext(os.path.basename(path))[0],
                encode_target(relative_target(doc.path, path, dot_prefix=True)),
                part.headings,
            )
            for section, path, part in zip(sections, part_paths, parts)
        ]
        index_content = render_split_index(doc, entries)
        index_doc = parse_document(doc.path, index_content, link_style=graph.link_style)

    after = graph.with_documents({doc.path: index_doc, **{part.path: part for part in parts}})

    def redirect(fragment_slug: str | None) -> tuple[str, str | None] | None:
        """New (path, slug) for a reference to the source, or None to leave it."""
        if fragment_slug is not None and fragment_slug in anchors:
            index, slug = anchors[fragment_slug]
            return part_paths[index], slug
        if keep_index:
            return None
        return part_paths[0], fragment_slug

    changes: list[Change] = []

    # Links inside the parts
    for i, section in enumerate(sections):
        start, end = line_offsets[section.start_line], line_offsets[section.end_line]
        part_path = part_paths[i]
        edits: list[tuple[Link, str]] = []
        for link in doc.links:
            if not start <= link.start < end:
                continue
            resolution = graph.resolve(doc, link)
            if resolution.path == doc.path and resolution.status in ("resolved", "anchor", "dangling-fragment"):
                matched = resolution.fragment if resolution.status != "dangling-fragment" else None
                target = redirect(matched)
                if target is None:
                    target = (doc.path, link.fragment)
                new_path, slug = target
                fragment = slug if matched is not None else link.fragment
                if new_path == part_path and (link.is_anchor or link.style != "claude") and fragment is not None:
                    new_raw = retarget(link, "", fragment)
                else:
                    new_raw = retarget(link, _target_text(after, link, part_path, new_path), fragment)
            else:
                target_path = _followed_target(graph, doc, link)
                if target_path is None or after.locate(part_path, link) == target_path:
                    continue
                new_raw = retarget(link, _target_text(after, link, part_path, target_path), link.fragment)
            if new_raw != link.raw:
                edits.append((link, new_raw))

        line_shift = prefixes[i].count("\n") - section.start_line
        changes.append(FileCreated(path=part_path, content=parts[i].content))
        changes.extend(_updates(part_path, edits, offset=len(prefixes[i]) - start, line_offset=line_shift))

    # Links elsewhere that point at the source
    referrers: set[str] = set()
    by_source: dict[str, list[tuple[Link, str]]] = {}
    for ref in graph.references_to(doc.path):
        if ref.source == doc.path:
            continue
        matched = ref.resolution.fragment if ref.resolution.status == "resolved" else None
        target = redirect(matched)
        if target is None:
            continue
        new_path, slug = target
        fragment = slug if matched is not None else ref.link.fragment
        new_raw = retarget(ref.link, _target_text(after, ref.link, ref.source, new_path), fragment)
        if new_raw != ref.link.raw:
            by_source.setdefault(ref.source, []).append((ref.link, new_raw))
    for path in sorted(by_source):
        referrers.add(path)
        changes.extend(_updates(path, by_source[path]))

    if keep_index:
        changes.append(FileModified(path=doc.path, content=index_content))
    else:
        changes.append(FileDeleted(path=doc.path))

    warnings = []
    if len(sections) == 1:
        warnings.append(f"{doc.path}: strategy '{strategy}' produced a single part")
    return _change_set("split", graph, changes, {doc.path} | referrers, warnings)


# ─────────────────────────────────────────────────────────────────────────────
# Join / Merge
# ─────────────────────────────────────────────────────────────────────────────


def merge_metadata(documents: Sequence[Document]) -> dict[str, Any]:
    """Combine frontmatter: the first value of a key wins, lists are unioned."""
    merged: dict[str, Any] = {}
    for doc in documents:
        for key, value in doc.metadata.items():
            if key not in merged:
                merged[key] = list(value) if isinstance(value, list) else value
            elif key in MERGED_LIST_KEYS or isinstance(merged[key], list):
                current = merged[key] if isinstance(merged[key], list) else [merged[key]]
                for item in value if isinstance(value, list) else [value]:
                    if item not in current:
                        current.append(item)
                merged[key] = current
    return merged


def _renamed_content(doc: Document, renames: Mapping[int, str]) -> str:
    if not renames:
        return doc.content
    lines = document_lines(doc)
    for line_number, text in renames.items():
        lines[line_number - 1] = rename_heading_line(lines[line_number - 1], text)
    return "".join(lines)


def _plan_combine(
    graph: LinkGraph,
    operation: OperationKind,
    sources: Sequence[str | os.PathLike[str]],
    destination: str | os.PathLike[str],
    *,
    order_strategy: str,
    merge_strategy: str,
    resolutions: Mapping[str, str] | None,
    separator: str,
    manual_order: Iterable[str] | None,
    include_destination: bool,
) -> ChangeSet:
    paths = list(dict.fromkeys(canonical(source) for source in sources))
    if not paths:
        raise PlanError(ErrorCode.INVALID_ARGUMENT, f"Nothing to {operation}: no source files")
    docs = [_require(graph, path) for path in paths]
    dst = canonical(destination)

    existing = graph.get(dst) if dst not in paths else None
    if dst not in paths and (os.path.isdir(dst) or (graph.exists(dst) and not (include_destination and existing))):
        raise DestinationCollisionError(dst, f"Destination already exists: {dst}")

    dependencies = graph.dependencies(paths) if order_strategy == "dependency" else None
    ordered = order_documents(docs, order_strategy, dependencies=dependencies, manual_order=manual_order)

    pieces = list(ordered)
    if existing is not None:
        if merge_strategy == "prepend":
            pieces.append(existing)
        else:
            pieces.insert(0, existing)

    renames = resolve_conflicts(pieces, merge_strategy, resolutions)
    piece_paths = {piece.path for piece in pieces}
    consumed = [path for path in paths if path != dst]

    # Re-parse renamed pieces so link offsets match the text being combined
    renamed = [
        parse_document(piece.path, _renamed_content(piece, renames.get(piece.path, {})), link_style=graph.link_style)
        if piece.path in renames
        else piece
        for piece in pieces
    ]

    metadata = merge_metadata(pieces)
    header = ""
    if metadata:
        post = frontmatter.Post("")
        post.metadata.update(metadata)
        header = frontmatter.dumps(post) + "\n\n"

    chunks: list[str] = []
    chunk_starts: list[int] = []  # Offset in the piece's content of each chunk
    for piece in renamed:
        body = piece.body
        stripped = body.lstrip("\r\n")
        chunk_starts.append(piece.frontmatter_end + len(body) - len(stripped))
        chunks.append(stripped.rstrip())

    combined_body = separator.join(chunks) + "\n"
    content = header + combined_body
    combined = parse_document(dst, content, link_style=graph.link_style)

    # (piece path, old slug) -> slug in the combined document
    slugs: dict[tuple[str, str], str] = {}
    heading_iter = iter(combined.headings)
    for original, piece in zip(pieces, renamed):
        for old, new in zip(original.headings, piece.headings):
            combined_heading = next(heading_iter, None)
            if combined_heading is None:
                break
            slugs[(original.path, old.slug)] = combined_heading.slug

    after = graph.with_documents({**{path: None for path in consumed}, dst: combined})

    # Links inside the combined document
    position = len(header)
    dest_edits: list[LinkUpdated] = []
    for original, piece, chunk, chunk_start in zip(pieces, renamed, chunks, chunk_starts):
        shift = position - chunk_start
        line_shift = content.count("\n", 0, position) - piece.content.count("\n", 0, chunk_start)
        edits: list[tuple[Link, str]] = []
        for link in piece.links:
            if not chunk_start <= link.start < chunk_start + len(chunk):
                continue
            resolution = graph.resolve(original, link)
            if resolution.path in piece_paths and resolution.status in ("resolved", "anchor", "dangling-fragment"):
                matched = resolution.fragment if resolution.status != "dangling-fragment" else None
                fragment = slugs.get((resolution.path, matched), link.fragment) if matched else link.fragment
                if fragment is not None and link.style != "claude":
                    new_raw = retarget(link, "", fragment)
                else:
                    new_raw = retarget(link, _target_text(after, link, dst, dst), fragment)
            else:
                target_path = _followed_target(graph, original, link)
                if target_path is None or after.locate(dst, link) == target_path:
                    continue
                new_raw = retarget(link, _target_text(after, link, dst, target_path), link.fragment)
            if new_raw != link.raw:
                edits.append((link, new_raw))
        dest_edits = _updates(dst, edits, offset=shift, line_offset=line_shift) + dest_edits
        position += len(chunk) + len(separator)

    # Links elsewhere that point at a combined piece
    by_source: dict[str, list[tuple[Link, str]]] = {}
    for path in sorted(graph.documents):
        if path in piece_paths:
            continue
        doc = graph.documents[path]
        for ref in graph.links_from(path):
            resolution = ref.resolution
            if resolution.path not in piece_paths or resolution.status not in ("resolved", "dangling-fragment"):
                continue
            matched = resolution.fragment if resolution.status == "resolved" else None
            fragment = slugs.get((resolution.path, matched), ref.link.fragment) if matched else ref.link.fragment
            if resolution.path == dst:
                target_text = ref.link.target
            else:
                target_text = _target_text(after, ref.link, doc.path, dst)
            new_raw = retarget(ref.link, target_text, fragment)
            if new_raw != ref.link.raw:
                by_source.setdefault(path, []).append((ref.link, new_raw))

    changes: list[Change] = []
    for path in sorted(by_source):
        changes.extend(_updates(path, by_source[path]))
    if graph.exists(dst):
        changes.append(FileModified(path=dst, content=content))
    else:
        changes.append(FileCreated(path=dst, content=content))
    changes.extend(dest_edits)
    changes.extend(FileDeleted(path=path) for path in consumed)

    snapshot = set(consumed) | set(by_source) | ({dst} if dst in graph else set())
    return _change_set(operation, graph, changes, snapshot)


def plan_join(
    graph: LinkGraph,
    sources: Sequence[str | os.PathLike[str]],
    destination: str | os.PathLike[str],
    order_strategy: str = DEFAULT_ORDER_STRATEGY,
    *,
    separator: str = JOIN_SEPARATOR,
    manual_order: Iterable[str] | None = None,
) -> ChangeSet:
    """Plan concatenating documents into a new destination.

    Colliding heading slugs are disambiguated on the later document. The
    destination must not exist unless it is one of the sources.

    Raises:
        DestinationCollisionError: The destination is taken.
        DependencyCycleError: Dependency order with mutually linked sources.
    """
    return _plan_combine(
        graph,
        "join",
        sources,
        destination,
        order_strategy=order_strategy,
        merge_strategy="append",
        resolutions=None,
        separator=separator,
        manual_order=manual_order,
        include_destination=False,
    )


def plan_merge(
    graph: LinkGraph,
    sources: Sequence[str | os.PathLike[str]],
    destination: str | os.PathLike[str],
    merge_strategy: str = DEFAULT_MERGE_STRATEGY,
    order_strategy: str = DEFAULT_ORDER_STRATEGY,
    *,
    resolutions: Mapping[str, str] | None = None,
    separator: str = MERGE_SEPARATOR,
    manual_order: Iterable[str] | None = None,
) -> ChangeSet:
    """Plan merging documents into a destination, which may already exist.

    An existing destination keeps its content first (append) or last
    (prepend). With the interactive strategy every heading conflict needs an
    entry in ``resolutions``.

    Raises:
        ConflictResolutionRequired: Interactive strategy with open conflicts.
        DependencyCycleError: Dependency order with mutually linked sources.
    """
    return _plan_combine(
        graph,
        "merge",
        sources,
        destination,
        order_strategy=order_strategy,
        merge_strategy=merge_strategy,
        resolutions=resolutions,
        separator=separator,
        manual_order=manual_order,
        include_destination=True,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Convert
# ─────────────────────────────────────────────────────────────────────────────


def plan_convert(
    graph: LinkGraph,
    files: Iterable[str | os.PathLike[str]],
    link_style: str | None = None,
    path_resolution: str | None = None,
) -> ChangeSet:
    """Plan rewriting link syntax and/or path form without changing targets.

    Only LinkUpdated changes are produced. Converting twice is a no-op.

    Raises:
        UnsupportedStrategyError: Nothing requested, or unknown values.
        SourceNotFoundError: A file is not in the graph.
    """
    if link_style is None and path_resolution is None:
        raise UnsupportedStrategyError(None, "Nothing to convert: give a link style and/or a path resolution")
    if link_style is not None and link_style not in LINK_STYLES:
        raise UnsupportedStrategyError(None, f"Unknown link style '{link_style}'. Choose from: {', '.join(LINK_STYLES)}")
    if path_resolution is not None and path_resolution not in PATH_RESOLUTIONS:
        raise UnsupportedStrategyError(
            None, f"Unknown path resolution '{path_resolution}'. Choose from: {', '.join(PATH_RESOLUTIONS)}"
        )

    docs = [_require(graph, path) for path in dict.fromkeys(canonical(f) for f in files)]
    changes: list[Change] = []
    touched: set[str] = set()
    for doc in docs:
        edits: list[tuple[Link, str]] = []
        for link in doc.links:
            target_path = _followed_target(graph, doc, link)
            converted = link
            if link_style is not None:
                converted = convert_style(doc, converted, target_path, link_style)
            if path_resolution is not None:
                converted = convert_path(doc, converted, target_path, graph.root, path_resolution)
            if converted is link:
                continue
            new_raw = render_link(converted)
            if new_raw != link.raw:
                edits.append((link, new_raw))
        if edits:
            touched.add(doc.path)
            changes.extend(_updates(doc.path, edits))

    return _change_set("convert", graph, changes, touched)


# ─────────────────────────────────────────────────────────────────────────────
# Heading rename
# ─────────────────────────────────────────────────────────────────────────────

_WIKILINK_FORBIDDEN = set("[]|#")


def _splice_all(content: str, edits: Iterable[tuple[int, int, str]]) -> str:
    for start, end, new_value in sorted(edits, reverse=True):
        content = content[:start] + new_value + content[end:]
    return content


def plan_rename_heading(
    graph: LinkGraph,
    files: Iterable[str | os.PathLike[str]],
    old_heading: str,
    new_heading: str,
) -> ChangeSet:
    """Plan renaming headings and rewriting every anchor that points at them.

    Every heading in ``files`` whose text is ``old_heading`` gets the new
    text. Links anywhere in the working set that name a renamed heading are
    rewritten to the new slug, as are links to other headings of the same
    document whose duplicate suffix shifts because of the rename. Wikilinks
    that spell out the heading text get the new text instead of a slug.

    Raises:
        SourceNotFoundError: A file is not in the graph.
        PlanError: No heading matched, or the new heading is empty or unchanged.
    """
    old_text, new_text = old_heading.strip(), new_heading.strip()
    if not slugify(new_text):
        raise PlanError(ErrorCode.INVALID_ARGUMENT, f"New heading '{new_heading}' has no text to link to")
    if old_text == new_text:
        raise PlanError(ErrorCode.INVALID_ARGUMENT, f"Heading is already '{new_text}'")

    docs = [_require(graph, path) for path in dict.fromkeys(canonical(f) for f in files)]

    heading_edits: dict[str, list[tuple[int, int, str]]] = {}
    renamed_slugs: dict[str, set[str]] = {}
    slug_maps: dict[str, dict[str, str]] = {}  # path -> old slug -> new slug
    for doc in docs:
        matches = [heading for heading in doc.headings if heading.text.strip() == old_text]
        if not matches:
            continue
        lines = document_lines(doc)
        edits = []
        for heading in matches:
            line = lines[heading.line - 1]
            edits.append((heading.offset, heading.offset + len(line), rename_heading_line(line, new_text)))
        after = parse_document(doc.path, _splice_all(doc.content, edits), link_style=graph.link_style)
        if len(after.headings) != len(doc.headings):
            raise PlanError(
                ErrorCode.INVALID_ARGUMENT,
                f"Renaming to '{new_text}' changes the heading structure of {doc.path}",
            )
        heading_edits[doc.path] = edits
        renamed_slugs[doc.path] = {heading.slug for heading in matches}
        slug_maps[doc.path] = {
            old.slug: new.slug for old, new in zip(doc.headings, after.headings) if old.slug != new.slug
        }

    if not heading_edits:
        raise PlanError(
            ErrorCode.HEADING_NOT_FOUND,
            f"No heading '{old_text}' found in {len(docs)} file(s)",
            {"heading": old_text},
        )

    link_edits: dict[str, list[tuple[Link, str]]] = {}
    for target_path, slug_map in slug_maps.items():
        for old_slug, new_slug in slug_map.items():
            for ref in graph.references_to_heading(target_path, old_slug):
                if ref.resolution.status not in ("resolved", "anchor"):
                    continue
                link = ref.link
                fragment = new_slug
                spelled_out = link.style == "wikilink" and link.fragment != old_slug
                if spelled_out and old_slug in renamed_slugs[target_path]:
                    if not set(new_text) & _WIKILINK_FORBIDDEN:
                        fragment = new_text
                new_raw = retarget(link, link.target, fragment)
                if new_raw != link.raw:
                    link_edits.setdefault(ref.source, []).append((link, new_raw))

    changes: list[Change] = []
    for path in sorted(set(link_edits) | set(heading_edits)):
        edits = link_edits.get(path, [])
        if path not in heading_edits:
            changes.extend(_updates(path, edits))
            continue
        spans = heading_edits[path]
        # Links written on a renamed heading line are replaced along with it
        kept = [(link, raw) for link, raw in edits if not any(start <= link.start < end for start, end, _ in spans)]
        splices = [(change.start, change.end, change.new_value) for change in _updates(path, kept)]
        changes.append(FileModified(path=path, content=_splice_all(graph.documents[path].content, spans + splices)))

    log.info(
        "Renaming %d heading(s) '%s' -> '%s', %d referring file(s)",
        sum(len(slugs) for slugs in renamed_slugs.values()),
        old_text,
        new_text,
        len(link_edits),
    )
    return _change_set("rename-heading", graph, changes, set(link_edits) | set(heading_edits))
