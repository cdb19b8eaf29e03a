"""CLI command groups."""

__all__ = [
    "cache",
    "jobs",
    "links",
    "references",
]

from . import cache, jobs, links, references
