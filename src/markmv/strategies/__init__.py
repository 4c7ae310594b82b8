"""Pluggable strategies for splitting, ordering, merging and converting."""

from .convert import LINK_STYLES, PATH_RESOLUTIONS, convert_path, convert_style
from .merge import MERGE_STRATEGIES, detect_conflicts, resolve_conflicts
from .order import ORDER_STRATEGIES, order_documents
from .split import SPLIT_STRATEGIES, SplitSection, get_split_strategy

__all__ = [
    "LINK_STYLES",
    "PATH_RESOLUTIONS",
    "convert_path",
    "convert_style",
    "MERGE_STRATEGIES",
    "detect_conflicts",
    "resolve_conflicts",
    "ORDER_STRATEGIES",
    "order_documents",
    "SPLIT_STRATEGIES",
    "SplitSection",
    "get_split_strategy",
]
