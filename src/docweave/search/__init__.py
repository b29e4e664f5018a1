"""Search package."""

from docweave.search.service import (
    SearchComponents,
    SearchService,
    build_search_components,
    build_search_service,
)

__all__ = [
    "SearchComponents",
    "SearchService",
    "build_search_components",
    "build_search_service",
]
