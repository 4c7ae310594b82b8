"""Change set application.

The executor is the only component that mutates the file system. Link updates
to one file are accumulated in memory and written once; every write goes
through a temporary sibling file and ``os.replace``.

A failed disk operation halts application. Files already written are not
rolled back; the result lists exactly what was applied.
"""

from __future__ import annotations

import logging
import os
import stat
import tempfile

from .config import MARKDOWN_EXTENSIONS
from .errors import ErrorCode, ExecutionError
from .graph import LinkGraph
from .models import (
    Change,
    ChangeSet,
    Document,
    FileCreated,
    FileDeleted,
    FileModified,
    LinkUpdated,
    OperationError,
    OperationResult,
    fingerprint,
    summarize_paths,
)
from .parser.markdown import parse_document, read_text

log = logging.getLogger(__name__)


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def atomic_write(path: str, content: str) -> None:
    """Write text through a temporary sibling and rename it into place.

    Line endings are written exactly as given. An existing file keeps its
    permission bits.
    """
    directory = os.path.dirname(path)
    os.makedirs(directory, exist_ok=True)
    if os.path.exists(path):
        mode = stat.S_IMODE(os.stat(path).st_mode)
    else:
        mode = 0o666 & ~_current_umask()

    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{os.path.basename(path)}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def _disk_error(path: str, action: str, error: OSError) -> ExecutionError:
    code = ErrorCode.PERMISSION_DENIED if isinstance(error, PermissionError) else ErrorCode.EXECUTION_FAILED
    return ExecutionError(path, f"Cannot {action}: {error.strerror or error}", code)


def _splice(path: str, content: str, change: LinkUpdated) -> str:
    found = content[change.start : change.end]
    if found != change.old_value:
        raise ExecutionError(
            path,
            f"Expected {change.old_value!r} at {change.start}:{change.end}, found {found!r}",
            ErrorCode.STALE_SNAPSHOT,
        )
    return content[: change.start] + change.new_value + content[change.end :]


def check_fingerprints(change_set: ChangeSet) -> None:
    """Make sure every snapshot file is unchanged since planning.

    Raises:
        ExecutionError: With STALE_SNAPSHOT if a file changed or disappeared.
    """
    for path, expected in change_set.fingerprints.items():
        try:
            current = read_text(path)
        except FileNotFoundError:
            raise ExecutionError(path, "File disappeared since planning", ErrorCode.STALE_SNAPSHOT) from None
        except (OSError, UnicodeDecodeError) as e:
            raise ExecutionError(path, f"Cannot read file: {e}", ErrorCode.STALE_SNAPSHOT) from e
        if fingerprint(current) != expected:
            raise ExecutionError(path, "File changed since planning; plan again", ErrorCode.STALE_SNAPSHOT)


def _flush_points(change_set: ChangeSet) -> set[int]:
    """Indexes after which a file's buffered content must be written.

    A buffer is written before any change to the same file that is not a link
    update, and after the file's last change.
    """
    points: set[int] = set()
    last_seen: dict[str, int] = {}
    for index, change in enumerate(change_set.changes):
        previous = last_seen.get(change.path)
        if previous is not None and not isinstance(change, LinkUpdated):
            points.add(previous)
        last_seen[change.path] = index
    points.update(last_seen.values())
    return points


def _result(
    change_set: ChangeSet,
    dry_run: bool,
    applied: list[Change],
    errors: list[OperationError],
) -> OperationResult:
    created, modified, deleted = summarize_paths(applied)
    return OperationResult(
        success=not errors,
        dry_run=dry_run,
        operation=change_set.operation,
        root=change_set.root,
        created_files=created,
        modified_files=modified,
        deleted_files=deleted,
        changes=tuple(applied),
        errors=errors,
        warnings=list(change_set.warnings),
    )


def execute(change_set: ChangeSet, dry_run: bool = False) -> OperationResult:
    """Apply a change set, or describe it without touching the disk.

    Args:
        change_set: Plan produced by one of the planners.
        dry_run: Only report what would happen.

    Returns:
        The result. On failure ``success`` is False, ``errors`` holds the
        cause and the file lists cover only the changes actually applied.
    """
    if dry_run:
        log.debug("Dry run of %s: %d changes", change_set.operation, len(change_set))
        return _result(change_set, True, list(change_set.changes), [])

    try:
        check_fingerprints(change_set)
    except ExecutionError as e:
        log.error("Refusing to apply %s: %s", change_set.operation, e.message)
        return _result(change_set, False, [], [OperationError(code=e.code.value, message=e.message, path=e.path)])

    flush_points = _flush_points(change_set)
    buffers: dict[str, str] = {}
    buffered: dict[str, list[tuple[int, Change]]] = {}
    applied: list[tuple[int, Change]] = []
    errors: list[OperationError] = []

    for index, change in enumerate(change_set.changes):
        path = change.path
        try:
            if isinstance(change, FileCreated):
                if os.path.exists(path):
                    raise ExecutionError(path, "File already exists", ErrorCode.DESTINATION_EXISTS)
                buffers[path] = change.content
            elif isinstance(change, FileModified):
                buffers[path] = change.content
            elif isinstance(change, LinkUpdated):
                if path not in buffers:
                    try:
                        buffers[path] = read_text(path)
                    except OSError as e:
                        raise _disk_error(path, "read file", e) from e
                    except UnicodeDecodeError as e:
                        raise ExecutionError(path, f"Not valid UTF-8: {e}") from e
                buffers[path] = _splice(path, buffers[path], change)
            elif isinstance(change, FileDeleted):
                try:
                    os.remove(path)
                except OSError as e:
                    raise _disk_error(path, "delete file", e) from e
                log.debug("Deleted %s", path)
                applied.append((index, change))
                continue

            buffered.setdefault(path, []).append((index, change))
            if index in flush_points:
                try:
                    atomic_write(path, buffers.pop(path))
                except OSError as e:
                    raise _disk_error(path, "write file", e) from e
                log.debug("Wrote %s", path)
                applied.extend(buffered.pop(path))
        except ExecutionError as e:
            log.error("Failed to apply %s change: %s", change.kind, e.message)
            errors.append(OperationError(code=e.code.value, message=e.message, path=path))
            break

    return _result(change_set, False, [change for _, change in sorted(applied, key=lambda item: item[0])], errors)


def simulate(change_set: ChangeSet, graph: LinkGraph) -> LinkGraph:
    """The graph that applying ``change_set`` to ``graph`` would produce.

    Nothing is read from or written to disk; content comes from the graph
    snapshot and the change set.

    Raises:
        ExecutionError: If a link update does not match the snapshot text.
    """
    contents: dict[str, str | None] = {}
    for change in change_set.changes:
        path = change.path
        if isinstance(change, (FileCreated, FileModified)):
            contents[path] = change.content
        elif isinstance(change, FileDeleted):
            contents[path] = None
        else:
            if path in contents:
                current = contents[path]
            else:
                doc = graph.get(path)
                current = doc.content if doc is not None else None
            if current is None:
                raise ExecutionError(path, "Link update for a file that does not exist", ErrorCode.STALE_SNAPSHOT)
            contents[path] = _splice(path, current, change)

    updated: dict[str, Document | None] = {}
    for path, content in contents.items():
        if content is None:
            updated[path] = None
        elif path in graph or path.lower().endswith(MARKDOWN_EXTENSIONS):
            updated[path] = parse_document(path, content, link_style=graph.link_style)
    return graph.with_documents(updated)
