"""Collects candidate cover URLs for an ISBN from all providers.

Providers are asked in priority order, each through its own resilience policy.
A provider that is rate limited, open-circuited, slow or has nothing simply
contributes no candidates - it never fails the collection.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from covershelf.domain.entities import CoverCandidateUrl
from covershelf.domain.ports import ICoverProvider
from covershelf.infrastructure.resilience import ResilienceRegistry

logger = logging.getLogger(__name__)


class CoverCandidateCollector:
    """Asks every provider for candidates, in order."""

    def __init__(
        self, providers: Sequence[ICoverProvider], resilience: ResilienceRegistry
    ) -> None:
        self.providers = list(providers)
        self.resilience = resilience

    async def collect(self, isbn: str) -> list[CoverCandidateUrl]:
        """Candidates from all providers, first provider first, duplicate URLs dropped."""
        candidates: list[CoverCandidateUrl] = []
        seen_urls: set[str] = set()
        for provider in self.providers:
            policy = self.resilience.get(provider.provider_name)
            result = await policy.execute(lambda p=provider: p.find_candidates(isbn))
            if not result.ok or not result.value:
                logger.debug(
                    "Provider %s gave no candidates for %s (%s)",
                    provider.provider_name,
                    isbn,
                    result.outcome.value,
                )
                continue
            for candidate in result.value:
                if candidate.url not in seen_urls:
                    seen_urls.add(candidate.url)
                    candidates.append(candidate)

        logger.info("Collected %d cover candidates for ISBN %s", len(candidates), isbn)
        return candidates
