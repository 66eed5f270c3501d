"""FlatWiki: a minimal file-backed wiki."""

__version__ = "0.1.0"
