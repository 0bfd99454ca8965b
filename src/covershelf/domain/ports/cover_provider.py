"""Cover provider port - third-party sources of candidate cover URLs."""

from abc import ABC, abstractmethod

from covershelf.domain.entities import CoverCandidateUrl


class ICoverProvider(ABC):
    """A third-party cover source (Google Books, Open Library, Longitood...)."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider name, also the key of its resilience policy."""
        ...

    @abstractmethod
    async def find_candidates(self, isbn: str) -> list[CoverCandidateUrl]:
        """Look up candidate cover URLs for an ISBN.

        Raises:
            ProviderNoResult: Provider answered but has no cover (does NOT trip breakers)
        """
        ...
