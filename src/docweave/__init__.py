"""Git-backed documentation knowledge base with hybrid and graph search."""

__version__ = "0.1.0"
