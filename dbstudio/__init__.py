"""Browser-based MySQL client backend: query execution, schema browsing, AI assistance and the visual query builder."""

__version__ = "0.1.0"
