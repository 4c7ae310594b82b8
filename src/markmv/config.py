"""Configuration management for markmv.

This module contains all configurable constants for markdown refactoring.
Magic numbers are documented here rather than scattered throughout the codebase.
"""

import os
from pathlib import Path
from typing import Literal, get_args

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigurationError

LinkStyleOption = Literal["markdown", "claude", "combined", "wikilink"]
PathResolution = Literal["absolute", "relative"]
SplitStrategyName = Literal["headers", "size", "manual", "lines"]
MergeStrategyName = Literal["append", "prepend", "interactive"]
OrderStrategyName = Literal["alphabetical", "manual", "dependency", "chronological"]

# Choices offered by the CLI
LINK_STYLE_CHOICES = get_args(LinkStyleOption)
SPLIT_STRATEGY_CHOICES = get_args(SplitStrategyName)
MERGE_STRATEGY_CHOICES = get_args(MergeStrategyName)
ORDER_STRATEGY_CHOICES = get_args(OrderStrategyName)
PATH_RESOLUTION_CHOICES = get_args(PathResolution)

CONFIG_FILENAME = ".markmv.yaml"


# =============================================================================
# Corpus Discovery
# =============================================================================

# File extensions treated as markdown documents when walking the corpus root
MARKDOWN_EXTENSIONS = (".md", ".markdown", ".mdx")

# Directory names never descended into when loading a corpus
EXCLUDED_DIRS = (".git", ".hg", ".svn", "node_modules", ".venv", "venv", "__pycache__")

# Maximum directory traversal depth when searching for .markmv.yaml
MAX_CONFIG_SEARCH_DEPTH = 10


# =============================================================================
# Strategy Defaults
# =============================================================================

# Link syntaxes recognised while parsing. "combined" recognises all of them.
DEFAULT_LINK_STYLE: LinkStyleOption = "combined"

DEFAULT_SPLIT_STRATEGY: SplitStrategyName = "headers"

# Interactive merging fails fast outside a terminal instead of guessing
DEFAULT_MERGE_STRATEGY: MergeStrategyName = "interactive"

DEFAULT_ORDER_STRATEGY: OrderStrategyName = "dependency"


# =============================================================================
# Split
# =============================================================================

# Size budget per output file for the "size" strategy, in kilobytes
SPLIT_MAX_SIZE_KB = 100

# Lines containing one of these markers start a new part ("manual" strategy).
# The marker line itself is dropped from the output.
SPLIT_MARKERS = ("<!-- split -->", "---split---")

# Generated part filenames are cut to this many characters before the extension
SPLIT_FILENAME_MAX_LENGTH = 50


# =============================================================================
# Join / Merge
# =============================================================================

# Inserted between joined documents. Surrounded by blank lines so the rule can
# never turn the preceding paragraph into a setext heading.
JOIN_SEPARATOR = "\n\n---\n\n"

# Inserted between merged documents
MERGE_SEPARATOR = "\n\n"

# Frontmatter keys whose list values are unioned when documents are combined
MERGED_LIST_KEYS = ("tags", "categories", "keywords", "aliases")


# =============================================================================
# Execution
# =============================================================================

# Suffix for staged copies written while applying cyclic moves (swaps)
STAGING_SUFFIX = ".markmv-staging"


class Settings(BaseModel):
    """Options that can be set in .markmv.yaml."""

    root: Path | None = None
    link_style: LinkStyleOption = DEFAULT_LINK_STYLE
    path_resolution: PathResolution | None = None
    split_strategy: SplitStrategyName = DEFAULT_SPLIT_STRATEGY
    merge_strategy: MergeStrategyName = DEFAULT_MERGE_STRATEGY
    order_strategy: OrderStrategyName = DEFAULT_ORDER_STRATEGY
    extensions: list[str] = Field(default_factory=lambda: list(MARKDOWN_EXTENSIONS))
    exclude: list[str] = Field(default_factory=list)


def _discover_config_file(start_dir: Path | None = None, max_depth: int = MAX_CONFIG_SEARCH_DEPTH) -> Path | None:
    """Walk up from start_dir looking for .markmv.yaml.

    Args:
        start_dir: Directory to start from (defaults to cwd)
        max_depth: Maximum directories to traverse up

    Returns:
        Path to the config file if found, None otherwise.
    """
    current = Path(start_dir or os.getcwd()).resolve()

    for _ in range(max_depth):
        config_file = current / CONFIG_FILENAME
        if config_file.is_file():
            return config_file

        parent = current.parent
        if parent == current:  # Reached filesystem root
            break
        current = parent

    return None


def load_settings(start_dir: Path | None = None) -> Settings:
    """Load settings from the nearest .markmv.yaml, or defaults if none exists.

    A relative ``root`` is interpreted relative to the config file's directory.

    Raises:
        ConfigurationError: If the config file is unreadable or invalid.
    """
    config_file = _discover_config_file(start_dir)
    if config_file is None:
        return Settings()

    try:
        data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read {config_file}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_file}: expected a mapping at top level")

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"  - {loc}: {error['msg']}")
        raise ConfigurationError(f"Invalid {config_file}:\n" + "\n".join(errors)) from e

    if settings.root is not None and not settings.root.is_absolute():
        settings = settings.model_copy(update={"root": (config_file.parent / settings.root).resolve()})
    elif settings.root is None:
        settings = settings.model_copy(update={"root": config_file.parent})
    return settings


def get_root(explicit: str | Path | None = None, settings: Settings | None = None) -> Path:
    """Get the corpus root directory.

    Discovery order:
    1. Explicit argument (--root)
    2. MARKMV_ROOT environment variable
    3. ``root`` from the nearest .markmv.yaml (defaults to its directory)
    4. Current working directory

    Raises:
        ConfigurationError: If the chosen root is not a directory.
    """
    if explicit:
        root = Path(explicit)
    elif os.environ.get("MARKMV_ROOT"):
        root = Path(os.environ["MARKMV_ROOT"])
    else:
        settings = settings or load_settings()
        root = settings.root or Path.cwd()

    root = root.expanduser().resolve()
    if not root.is_dir():
        raise ConfigurationError(f"Corpus root is not a directory: {root}")
    return root
