"""Common interface of the retrieval strategies and their registry."""

from typing import Protocol, runtime_checkable

from docweave.models.search import SearchMode, SearchResult


@runtime_checkable
class SearchStrategy(Protocol):
    """One retrieval modality: it can index a version and answer queries."""

    mode: SearchMode

    async def search(self, project_id: str, query: str, top_k: int) -> list[SearchResult]:
        ...

    async def index(self, version_id: str) -> int:
        """Index a version's chunks. Returns the number of chunks indexed."""
        ...


class StrategyRegistry:
    """Maps each SearchMode to the strategy that serves it."""

    def __init__(self, strategies: list[SearchStrategy] | None = None):
        self._strategies: dict[SearchMode, SearchStrategy] = {}
        for strategy in strategies or []:
            self.register(strategy)

    def register(self, strategy: SearchStrategy) -> None:
        self._strategies[strategy.mode] = strategy

    def get(self, mode: SearchMode) -> SearchStrategy:
        """Strategy for a mode. Raises ValueError if the mode is not configured."""
        try:
            return self._strategies[mode]
        except KeyError:
            raise ValueError(f"Search mode not available: {mode.value}") from None

    def available_modes(self) -> list[SearchMode]:
        return [mode for mode in SearchMode if mode in self._strategies]

    def __iter__(self):
        return iter(self._strategies.values())
