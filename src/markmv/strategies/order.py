"""Ordering strategies for join and merge."""

from __future__ import annotations

import os
from datetime import date, datetime
from typing import Any, Iterable, Mapping

from ..errors import DependencyCycleError, ErrorCode, PlanError, UnsupportedStrategyError
from ..models import Document
from ..paths import canonical

ORDER_STRATEGIES = ("alphabetical", "manual", "dependency", "chronological")

# Frontmatter keys consulted, in order, by the chronological strategy
DATE_KEYS = ("date", "created")


def _timestamp(value: Any) -> float | None:
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day).timestamp()
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip()).timestamp()
        except ValueError:
            return None
    return None


def document_time(doc: Document) -> float:
    """Frontmatter date of a document, falling back to its modification time."""
    for key in DATE_KEYS:
        stamp = _timestamp(doc.metadata.get(key))
        if stamp is not None:
            return stamp
    return doc.modified_at or 0.0


def _find_cycle(remaining: list[str], dependencies: Mapping[str, set[str]]) -> list[str]:
    """Return one cycle among ``remaining`` as a closed path (first == last)."""
    pending = set(remaining)
    for start in remaining:
        path = [start]
        seen = {start: 0}
        node = start
        while True:
            nxt = next((dep for dep in sorted(dependencies.get(node, ())) if dep in pending), None)
            if nxt is None:
                break
            if nxt in seen:
                cycle = path[seen[nxt]:]
                return [os.path.basename(p) for p in cycle + [nxt]]
            seen[nxt] = len(path)
            path.append(nxt)
            node = nxt
    return [os.path.basename(p) for p in remaining]


def dependency_order(paths: list[str], dependencies: Mapping[str, set[str]]) -> list[str]:
    """Topological order in which every file comes after the files it links to.

    Ties keep the input order.

    Raises:
        DependencyCycleError: If the files link to each other in a cycle.
    """
    remaining = list(paths)
    ordered: list[str] = []
    while remaining:
        pending = set(remaining)
        ready = next(
            (path for path in remaining if not (dependencies.get(path, set()) - {path}) & pending),
            None,
        )
        if ready is None:
            raise DependencyCycleError(_find_cycle(remaining, dependencies))
        ordered.append(ready)
        remaining.remove(ready)
    return ordered


def order_documents(
    documents: Iterable[Document],
    strategy: str,
    *,
    dependencies: Mapping[str, set[str]] | None = None,
    manual_order: Iterable[str] | None = None,
) -> list[Document]:
    """Order documents for concatenation.

    Args:
        documents: Documents in the order the caller listed them.
        strategy: alphabetical, manual, dependency or chronological.
        dependencies: Path -> paths it links to (required for "dependency").
        manual_order: Explicit path order for "manual"; defaults to the input order.

    Raises:
        UnsupportedStrategyError: Unknown strategy.
        PlanError: ``manual_order`` is not a permutation of the documents.
        DependencyCycleError: The documents link to each other in a cycle.
    """
    docs = list(documents)
    by_path = {doc.path: doc for doc in docs}

    if strategy == "alphabetical":
        return sorted(docs, key=lambda doc: (doc.name.lower(), doc.path))

    if strategy == "chronological":
        return sorted(docs, key=lambda doc: (document_time(doc), doc.path))

    if strategy == "manual":
        if manual_order is None:
            return docs
        order = [canonical(path) for path in manual_order]
        if sorted(order) != sorted(by_path):
            raise PlanError(
                ErrorCode.INVALID_ARGUMENT,
                "Manual order must list every source file exactly once",
                {"expected": sorted(by_path), "got": order},
            )
        return [by_path[path] for path in order]

    if strategy == "dependency":
        ordered = dependency_order(list(by_path), dependencies or {})
        return [by_path[path] for path in ordered]

    raise UnsupportedStrategyError(
        None, f"Unknown order strategy '{strategy}'. Choose from: {', '.join(ORDER_STRATEGIES)}"
    )
