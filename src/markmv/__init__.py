"""markmv: refactor interlinked markdown documents without breaking links."""

__version__ = "0.4.0"
