"""Core operations for markmv.

This module contains the operation pipeline used by the CLI: load the working
set, plan, execute (or dry-run) and validate.

Design principles:
- All operations are async for consistency; none of them suspend except on
  ordinary file I/O
- Planning never touches the disk, so any failure before execution leaves the
  corpus untouched
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from . import config as _config
from .config import Settings
from .errors import ErrorCode, PlanError, SourceNotFoundError
from .executor import execute
from .graph import LinkGraph, build_link_graph
from .models import ChangeSet, OperationReport, ValidationReport
from .paths import canonical, is_within
from .planner import plan_convert, plan_join, plan_merge, plan_move, plan_rename_heading, plan_split
from .validator import check_links, validate

log = logging.getLogger(__name__)


# NOTE: config functions are resolved at call time so tests can patch
# `markmv.config.load_settings` without the patch leaking into this module.
def load_settings(start_dir: Path | None = None) -> Settings:
    return _config.load_settings(start_dir)


def get_root(explicit: str | Path | None = None, settings: Settings | None = None) -> Path:
    return _config.get_root(explicit, settings)


def _settings_for(root: str | Path | None) -> Settings:
    """Settings from the .markmv.yaml nearest to an explicit root, else to the cwd."""
    return load_settings(Path(root) if root else None)


def load_graph(
    root: str | Path | None = None,
    settings: Settings | None = None,
    extra_paths: Iterable[str | os.PathLike[str]] = (),
) -> LinkGraph:
    """Parse every document under the corpus root into a LinkGraph.

    Raises:
        ConfigurationError: The root cannot be determined.
        ParseError: A document cannot be read or parsed.
    """
    settings = settings or load_settings()
    corpus_root = get_root(root, settings)
    return build_link_graph(
        corpus_root,
        extensions=settings.extensions,
        exclude=settings.exclude,
        link_style=settings.link_style,
        extra_paths=extra_paths,
    )


def _finish(
    change_set: ChangeSet,
    graph: LinkGraph,
    *,
    dry_run: bool,
    check: bool,
) -> OperationReport:
    result = execute(change_set, dry_run=dry_run)
    validation = validate(result, graph) if check else None
    if result.success:
        log.info(
            "%s %s: %d created, %d modified, %d deleted",
            "Planned" if dry_run else "Applied",
            change_set.operation,
            len(result.created_files),
            len(result.modified_files),
            len(result.deleted_files),
        )
    return OperationReport(result=result, validation=validation)


# ─────────────────────────────────────────────────────────────────────────────
# Move
# ─────────────────────────────────────────────────────────────────────────────


def _documents_under(graph: LinkGraph, directory: str) -> list[str]:
    return sorted(path for path in graph.documents if path != directory and is_within(path, directory))


def expand_move_pairs(
    graph: LinkGraph,
    sources: Sequence[str | os.PathLike[str]],
    destination: str | os.PathLike[str],
) -> list[tuple[str, str]]:
    """Turn ``mv``-style arguments into (source, destination) document pairs.

    A directory source expands to one pair per document inside it. The
    destination is treated as a directory when it already is one, when it
    ends with a separator, or when there is more than one source; each source
    then keeps its name inside it.

    Raises:
        SourceNotFoundError: A source is neither a document nor a directory
            containing documents.
        PlanError: Nothing to move.
    """
    if not sources:
        raise PlanError(ErrorCode.INVALID_ARGUMENT, "No sources given")

    raw_destination = os.fspath(destination)
    dst = canonical(raw_destination)
    into_directory = (
        os.path.isdir(dst) or raw_destination.endswith(("/", os.sep)) or len(sources) > 1
    )

    pairs: list[tuple[str, str]] = []
    for source in sources:
        src = canonical(source)
        target = os.path.join(dst, os.path.basename(src)) if into_directory else dst
        if os.path.isdir(src):
            documents = _documents_under(graph, src)
            if not documents:
                raise SourceNotFoundError(src)
            pairs.extend((path, os.path.join(target, os.path.relpath(path, src))) for path in documents)
        elif src in graph:
            pairs.append((src, target))
        else:
            raise SourceNotFoundError(src)
    return pairs


def _prune_empty_dirs(directories: Iterable[str], root: str) -> None:
    """Remove directories left empty by a move, deepest first, never the root."""
    for directory in sorted(set(directories), key=len, reverse=True):
        for dirpath, _dirnames, _filenames in os.walk(directory, topdown=False):
            if dirpath == root or not os.path.isdir(dirpath):
                continue
            if not os.listdir(dirpath):
                os.rmdir(dirpath)
                log.debug("Removed empty directory %s", dirpath)


async def move_documents(
    sources: Sequence[str | os.PathLike[str]],
    destination: str | os.PathLike[str],
    *,
    root: str | Path | None = None,
    overwrite: bool = False,
    dry_run: bool = False,
    check: bool = True,
) -> OperationReport:
    """Move documents or directories and rewrite every link that points at them.

    Args:
        sources: Files or directories to move.
        destination: New path, or a directory to move the sources into.
        root: Corpus root (see config.get_root for discovery).
        overwrite: Replace existing destinations outside the move set.
        dry_run: Report the changes without applying them.
        check: Validate links after the operation.

    Returns:
        OperationReport with the execution result and its validation.
    """
    graph = load_graph(root, _settings_for(root))
    pairs = expand_move_pairs(graph, sources, destination)
    change_set = plan_move(graph, pairs, overwrite=overwrite)
    moved_dirs = [canonical(source) for source in sources if os.path.isdir(canonical(source))]
    report = _finish(change_set, graph, dry_run=dry_run, check=check)

    if moved_dirs and report.result.success and not dry_run:
        _prune_empty_dirs(moved_dirs, graph.root)
    return report


# ─────────────────────────────────────────────────────────────────────────────
# Split / Join / Merge
# ─────────────────────────────────────────────────────────────────────────────


async def split_document(
    source: str | os.PathLike[str],
    strategy: str | None = None,
    *,
    root: str | Path | None = None,
    output_dir: str | os.PathLike[str] | None = None,
    keep_index: bool = True,
    dry_run: bool = False,
    check: bool = True,
    **params,
) -> OperationReport:
    """Split one document into several.

    ``strategy`` defaults to the configured split strategy; ``params`` are
    passed to it (header_level, max_size, max_lines, markers, lines).
    """
    settings = _settings_for(root)
    graph = load_graph(root, settings)
    change_set = plan_split(
        graph,
        source,
        strategy or settings.split_strategy,
        output_dir=output_dir,
        keep_index=keep_index,
        **params,
    )
    return _finish(change_set, graph, dry_run=dry_run, check=check)


async def join_documents(
    sources: Sequence[str | os.PathLike[str]],
    destination: str | os.PathLike[str],
    order_strategy: str | None = None,
    *,
    root: str | Path | None = None,
    separator: str | None = None,
    manual_order: Iterable[str] | None = None,
    dry_run: bool = False,
    check: bool = True,
) -> OperationReport:
    """Concatenate documents into a new file, redirecting links to them."""
    settings = _settings_for(root)
    graph = load_graph(root, settings)
    extra = {"separator": separator} if separator is not None else {}
    change_set = plan_join(
        graph,
        sources,
        destination,
        order_strategy or settings.order_strategy,
        manual_order=manual_order,
        **extra,
    )
    return _finish(change_set, graph, dry_run=dry_run, check=check)


async def merge_documents(
    sources: Sequence[str | os.PathLike[str]],
    destination: str | os.PathLike[str],
    merge_strategy: str | None = None,
    order_strategy: str | None = None,
    *,
    root: str | Path | None = None,
    resolutions: Mapping[str, str] | None = None,
    separator: str | None = None,
    manual_order: Iterable[str] | None = None,
    dry_run: bool = False,
    check: bool = True,
) -> OperationReport:
    """Merge documents into a destination, which may already exist.

    Raises:
        ConflictResolutionRequired: The interactive strategy found heading
            conflicts without an entry in ``resolutions``. Nothing was written.
    """
    settings = _settings_for(root)
    graph = load_graph(root, settings)
    extra = {"separator": separator} if separator is not None else {}
    change_set = plan_merge(
        graph,
        sources,
        destination,
        merge_strategy or settings.merge_strategy,
        order_strategy or settings.order_strategy,
        resolutions=resolutions,
        manual_order=manual_order,
        **extra,
    )
    return _finish(change_set, graph, dry_run=dry_run, check=check)


# ─────────────────────────────────────────────────────────────────────────────
# Convert / Validate
# ─────────────────────────────────────────────────────────────────────────────


def _select_documents(graph: LinkGraph, paths: Iterable[str | os.PathLike[str]]) -> list[str]:
    """Documents named by ``paths``, expanding directories; all documents if empty."""
    selected: dict[str, None] = {}
    given = False
    for path in paths:
        given = True
        resolved = canonical(path)
        if os.path.isdir(resolved):
            selected.update(dict.fromkeys(_documents_under(graph, resolved)))
        elif resolved in graph:
            selected[resolved] = None
        else:
            raise SourceNotFoundError(resolved)
    if not given:
        return sorted(graph.documents)
    return list(selected)


async def convert_links(
    files: Iterable[str | os.PathLike[str]] = (),
    link_style: str | None = None,
    path_resolution: str | None = None,
    *,
    root: str | Path | None = None,
    dry_run: bool = False,
    check: bool = True,
) -> OperationReport:
    """Rewrite link syntax and/or path form in place.

    With neither option given, the configured ``path_resolution`` is used.
    """
    settings = _settings_for(root)
    graph = load_graph(root, settings)
    if link_style is None and path_resolution is None:
        path_resolution = settings.path_resolution
    change_set = plan_convert(graph, _select_documents(graph, files), link_style, path_resolution)
    return _finish(change_set, graph, dry_run=dry_run, check=check)


async def rename_heading(
    old_heading: str,
    new_heading: str,
    files: Iterable[str | os.PathLike[str]] = (),
    *,
    root: str | Path | None = None,
    dry_run: bool = False,
    check: bool = True,
) -> OperationReport:
    """Rename a heading and update every anchor that links to it.

    With no files every document carrying the heading is renamed.
    """
    graph = load_graph(root, _settings_for(root))
    change_set = plan_rename_heading(graph, _select_documents(graph, files), old_heading, new_heading)
    return _finish(change_set, graph, dry_run=dry_run, check=check)


async def check_corpus(
    paths: Iterable[str | os.PathLike[str]] = (),
    *,
    root: str | Path | None = None,
) -> ValidationReport:
    """Report broken links in the corpus, or only in the given files."""
    graph = load_graph(root, _settings_for(root))
    return check_links(graph, _select_documents(graph, paths))
