"""Path normalisation and link-target rendering.

Targets are resolved relative to the referring file's directory, except:
- ``/x.md`` is relative to the corpus root
- ``~/x.md`` is relative to the user's home directory
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from urllib.parse import unquote

# scheme: (https:, mailto:, ftp:, ...) but not a Windows drive letter
URL_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]+:")


def canonical(path: str | os.PathLike[str]) -> str:
    """Absolute, normalised path with '.' and '..' collapsed (no symlink resolution)."""
    return os.path.normpath(os.path.abspath(os.fspath(path)))


def is_external(target: str) -> bool:
    """True for URLs and protocol-relative references."""
    return bool(URL_SCHEME.match(target)) or target.startswith("//")


def is_within(path: str, root: str) -> bool:
    try:
        return os.path.commonpath([path, root]) == root
    except ValueError:
        return False


def resolve_target(source_path: str, target: str, root: str) -> str:
    """Resolve a written link target to a canonical absolute path."""
    target = unquote(target)
    if target.startswith("~/"):
        return canonical(Path(target).expanduser())
    if target.startswith("/"):
        return canonical(os.path.join(root, target.lstrip("/")))
    return canonical(os.path.join(os.path.dirname(source_path), target))


def relative_target(from_file: str, to_path: str, dot_prefix: bool = False) -> str:
    """Relative link text from the directory of ``from_file`` to ``to_path``."""
    rel = os.path.relpath(to_path, os.path.dirname(from_file)).replace(os.sep, "/")
    if dot_prefix and not rel.startswith("."):
        rel = f"./{rel}"
    return rel


def root_relative(to_path: str, root: str) -> str | None:
    """``/``-prefixed path relative to the corpus root, or None outside it."""
    if not is_within(to_path, root):
        return None
    rel = os.path.relpath(to_path, root).replace(os.sep, "/")
    return f"/{rel}"


def home_relative(to_path: str) -> str | None:
    home = canonical(Path.home())
    if not is_within(to_path, home):
        return None
    return "~/" + os.path.relpath(to_path, home).replace(os.sep, "/")


def encode_target(target: str) -> str:
    """Escape spaces for markdown destinations, which cannot contain raw whitespace."""
    return target.replace(" ", "%20")


def rewrite_target(original: str, from_file: str, to_path: str, root: str) -> str:
    """Render ``to_path`` as seen from ``from_file``, keeping the form of ``original``.

    Root-relative and home-relative targets stay in their form where possible,
    a leading './' is preserved, and an omitted extension stays omitted.
    """
    new: str | None = None
    if original.startswith("~/"):
        new = home_relative(to_path)
    elif original.startswith("/"):
        new = root_relative(to_path, root)
    if new is None:
        new = relative_target(from_file, to_path, dot_prefix=original.startswith("./"))

    original_ext = os.path.splitext(unquote(original).rstrip("/"))[1]
    new_stem, new_ext = os.path.splitext(new)
    if original and not original_ext and new_ext == ".md":
        new = new_stem
    if "%20" in original:
        new = encode_target(new)
    return new
