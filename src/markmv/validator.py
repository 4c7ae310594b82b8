"""Post-operation validation.

The validator rebuilds the part of the link graph an operation touched, from
disk after a real run or by simulation for a plan or dry run, and reports
every link that no longer resolves.
"""

from __future__ import annotations

import logging
import os
from typing import Iterable

from .config import MARKDOWN_EXTENSIONS
from .errors import ErrorCode, ExecutionError, ParseError
from .executor import simulate
from .graph import LinkGraph, LinkRef
from .models import (
    BrokenLink,
    ChangeSet,
    Document,
    FileCreated,
    FileDeleted,
    OperationError,
    OperationResult,
    ValidationReport,
)
from .parser.markdown import load_document

log = logging.getLogger(__name__)


def _structural_errors(change_set: ChangeSet, graph: LinkGraph) -> list[OperationError]:
    """Creations over files that exist at that point in the sequence."""
    errors: list[OperationError] = []
    present: dict[str, bool] = {}
    for change in change_set.changes:
        exists = present.get(change.path)
        if exists is None:
            exists = graph.exists(change.path)
        if isinstance(change, FileCreated):
            if exists:
                errors.append(
                    OperationError(
                        code=ErrorCode.DESTINATION_EXISTS.value,
                        message=f"Would create a file that already exists: {change.path}",
                        path=change.path,
                    )
                )
            present[change.path] = True
        elif isinstance(change, FileDeleted):
            if not exists:
                errors.append(
                    OperationError(
                        code=ErrorCode.SOURCE_NOT_FOUND.value,
                        message=f"Would delete a file that does not exist: {change.path}",
                        path=change.path,
                    )
                )
            present[change.path] = False
    return errors


def _reload(paths: Iterable[str], graph: LinkGraph) -> tuple[LinkGraph, list[OperationError]]:
    """Graph with ``paths`` re-read from disk (missing files are dropped)."""
    updated: dict[str, Document | None] = {}
    errors: list[OperationError] = []
    for path in paths:
        if not os.path.isfile(path):
            updated[path] = None
            continue
        if path not in graph and not path.lower().endswith(MARKDOWN_EXTENSIONS):
            continue
        try:
            updated[path] = load_document(path, link_style=graph.link_style)
        except ParseError as e:
            errors.append(OperationError(code=e.code.value, message=e.message, path=path))
            updated[path] = None
    return graph.with_documents(updated), errors


def _referrers(graph: LinkGraph, paths: set[str]) -> set[str]:
    return {ref.source for path in paths for ref in graph.references_to(path)}


def _report(broken: list[LinkRef], errors: list[OperationError], checked: Iterable[str]) -> ValidationReport:
    broken_links = [
        BrokenLink(
            source=ref.source,
            link=ref.link,
            reason="dangling-fragment" if ref.resolution.status == "dangling-fragment" else "missing",
            resolved_path=ref.resolution.path,
        )
        for ref in broken
    ]
    checked_files = sorted(set(checked))
    log.info("Validated %d files: %d broken links, %d errors", len(checked_files), len(broken_links), len(errors))
    return ValidationReport(
        valid=not broken_links and not errors,
        broken_links=broken_links,
        errors=errors,
        checked_files=checked_files,
    )


def validate(outcome: OperationResult | ChangeSet, graph: LinkGraph) -> ValidationReport:
    """Check that every link touched by an operation still resolves.

    Args:
        outcome: A change set (checked by simulation), a dry-run result
            (simulated) or a real result (re-read from disk).
        graph: The snapshot the operation was planned against.

    Returns:
        Broken links among the touched files and the files that referred to
        them, plus structural errors. ``valid`` is True only when both are empty.
    """
    if isinstance(outcome, ChangeSet):
        change_set = outcome
        simulated = True
        errors: list[OperationError] = []
    else:
        change_set = ChangeSet(operation=outcome.operation, root=outcome.root, changes=outcome.changes)
        simulated = outcome.dry_run
        errors = list(outcome.errors)

    touched = {change.path for change in change_set.changes}

    if simulated:
        errors.extend(_structural_errors(change_set, graph))
        try:
            after = simulate(change_set, graph)
        except (ExecutionError, ParseError) as e:
            errors.append(OperationError(code=e.code.value, message=e.message, path=getattr(e, "path", None)))
            return _report([], errors, touched)
    else:
        after, read_errors = _reload(touched, graph)
        errors.extend(read_errors)

    checked = {path for path in touched if path in after}
    checked |= {path for path in _referrers(graph, touched) | _referrers(after, touched) if path in after}
    return _report(after.broken_links(checked), errors, checked)


def check_links(graph: LinkGraph, paths: Iterable[str] | None = None) -> ValidationReport:
    """Report broken links across the graph, or only in ``paths``."""
    selected = list(graph.documents) if paths is None else [path for path in paths if path in graph]
    return _report(graph.broken_links(selected), [], selected)
