"""Shared test fixtures for the markmv test suite.

Design:
- corpus: isolated corpus root in a temp directory, exported as MARKMV_ROOT
- write_doc: writes a markdown file relative to the corpus root
- load_graph: parses the corpus into a LinkGraph snapshot
- runner: CliRunner for CLI tests
"""

import os
from pathlib import Path
from typing import Callable, Generator

import pytest
from click.testing import CliRunner

from markmv.graph import LinkGraph, build_link_graph


# ─────────────────────────────────────────────────────────────────────────────
# Core Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def runner() -> CliRunner:
    """CLI runner with isolated environment."""
    return CliRunner()


@pytest.fixture
def corpus(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Create an empty corpus root and make it the working directory.

    Usage:
        def test_something(corpus, write_doc):
            write_doc("a.md", "# A")
    """
    root = (tmp_path / "corpus").resolve()
    root.mkdir()
    monkeypatch.setenv("MARKMV_ROOT", str(root))
    monkeypatch.delenv("MARKMV_QUIET", raising=False)
    monkeypatch.chdir(root)
    yield root


@pytest.fixture
def write_doc(corpus: Path) -> Callable[[str, str], Path]:
    """Write a file under the corpus root, creating parent directories."""

    def _write(relative: str, content: str) -> Path:
        path = corpus / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        return path

    return _write


@pytest.fixture
def load_graph(corpus: Path) -> Callable[[], LinkGraph]:
    """Parse the corpus as it currently is on disk."""

    def _load() -> LinkGraph:
        return build_link_graph(corpus)

    return _load


@pytest.fixture(autouse=True)
def reset_quiet_mode() -> Generator[None, None, None]:
    """--quiet flips module state in markmv._logging; switch it off after each test."""
    yield
    from markmv._logging import set_quiet_mode

    set_quiet_mode(False)


def read(path: Path | str) -> str:
    with open(path, encoding="utf-8", newline="") as handle:
        return handle.read()


def p(root: Path, relative: str) -> str:
    """Canonical string path of ``relative`` under ``root``."""
    return os.path.normpath(os.path.join(str(root), relative))
