"""Graph node implementations."""

from .row_stages import (  # noqa: F401
    draft_node,
    research_node,
    resolve_context_node,
    tailor_node,
)

__all__ = [
    "draft_node",
    "research_node",
    "resolve_context_node",
    "tailor_node",
]
