"""Cover ranking - pick ONE canonical cover out of all candidate rows of a book.

Hey future me - this is where correctness risk lives. Two tiers:

STRICT (quality_rank 0): width >= 180, height >= 280, 1.2 <= h/w <= 2.0 and the URL
    is not a Google Books preview page (title page, copyright, TOC...). Order by
    priority score, then height desc, width desc, newest first.
RELAXED (quality_rank 1): everything else, ordered by pixel area desc, newest first.
    Only matters when NO candidate made it into the strict tier.

Any strict candidate beats any relaxed one, no matter how many pixels the relaxed one
has. The same ordering exists as SQL in infrastructure/persistence/cover_ranking_sql.py
and the two MUST agree - change both or neither.

PRIORITY SCORE (lower wins), compared lexicographically:
    storage-held (has storage_key)  >  variant hierarchy  >  high-res  >  non-grayscale
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC

from covershelf.domain.entities import CoverCandidate, CoverDescriptor

STRICT_MIN_WIDTH = 180
STRICT_MIN_HEIGHT = 280
MIN_ASPECT_RATIO = 1.2
MAX_ASPECT_RATIO = 2.0
HIGH_RESOLUTION_MIN_PIXELS = 320_000

# Known gap: these are Google Books "printsec" markers only. Junk pages from other
# providers slip through until we see real examples of their URL schemes.
EXCLUDED_URL_MARKERS: tuple[str, ...] = (
    "printsec=titlepage",
    "printsec=copyright",
    "printsec=toc",
    "printsec=index",
    "printsec=contents",
)

# Lowercased variant name -> hierarchy rank
VARIANT_HIERARCHY: dict[str, int] = {
    "canonical": 0,
    "extralarge": 1,
    "large": 2,
    "medium": 3,
    "small": 4,
    "thumbnail": 5,
    "smallthumbnail": 6,
}
OTHER_VARIANT_RANK = 7

STORAGE_WEIGHT = 1000
HIERARCHY_WEIGHT = 100
HIGH_RES_WEIGHT = 10

STRICT_TIER = 0
RELAXED_TIER = 1


def variant_rank(variant: str | None) -> int:
    """Hierarchy rank of a variant name (case-insensitive)."""
    if not variant:
        return OTHER_VARIANT_RANK
    return VARIANT_HIERARCHY.get(variant.strip().lower(), OTHER_VARIANT_RANK)


def priority_score(candidate: CoverCandidate) -> int:
    """Priority score of a candidate, lower is better."""
    storage_bucket = 0 if candidate.is_storage_held else 1
    if candidate.is_high_resolution is True:
        high_res = 0
    elif candidate.is_high_resolution is False:
        high_res = 1
    else:
        high_res = 2
    grayscale_penalty = 1 if candidate.is_grayscale is True else 0
    return (
        storage_bucket * STORAGE_WEIGHT
        + variant_rank(candidate.variant) * HIERARCHY_WEIGHT
        + high_res * HIGH_RES_WEIGHT
        + grayscale_penalty
    )


def is_excluded_url(url: str | None) -> bool:
    """True if the URL looks like a book preview page rather than a cover."""
    if not url:
        return False
    lowered = url.lower()
    return any(marker in lowered for marker in EXCLUDED_URL_MARKERS)


def passes_strict_tier(candidate: CoverCandidate) -> bool:
    """Check the strict quality thresholds. Unknown dimensions never pass."""
    width, height = candidate.width, candidate.height
    if width is None or height is None or width <= 0:
        return False
    if width < STRICT_MIN_WIDTH or height < STRICT_MIN_HEIGHT:
        return False
    aspect_ratio = height / width
    if not MIN_ASPECT_RATIO <= aspect_ratio <= MAX_ASPECT_RATIO:
        return False
    return not is_excluded_url(candidate.url)


def is_high_resolution(width: int | None, height: int | None) -> bool | None:
    """High resolution = at least 320k pixels. None when dimensions are unknown."""
    if width is None or height is None:
        return None
    return width * height >= HIGH_RESOLUTION_MIN_PIXELS


def _created_epoch(candidate: CoverCandidate) -> float:
    # Unknown creation time sorts as the oldest
    created_at = candidate.created_at
    if created_at is None:
        return float("-inf")
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)
    return created_at.timestamp()


def ranking_key(candidate: CoverCandidate) -> tuple[int, int, int, int, float]:
    """Sort key implementing both tiers. The smallest key is the canonical cover."""
    newest_first = -_created_epoch(candidate)
    if passes_strict_tier(candidate):
        return (
            STRICT_TIER,
            priority_score(candidate),
            -(candidate.height or 0),
            -(candidate.width or 0),
            newest_first,
        )
    return (RELAXED_TIER, 0, -candidate.pixel_area, 0, newest_first)


def is_rankable(candidate: CoverCandidate) -> bool:
    """Errored rows and rows with nothing to show never take part in ranking."""
    if candidate.download_error is not None:
        return False
    return bool(candidate.url or candidate.storage_key)


def rank_candidates(candidates: Iterable[CoverCandidate]) -> list[CoverCandidate]:
    """All rankable candidates, best first."""
    return sorted((c for c in candidates if is_rankable(c)), key=ranking_key)


def select_canonical(candidates: Iterable[CoverCandidate]) -> CoverCandidate | None:
    """The canonical cover, or None when there is nothing to show."""
    ranked = rank_candidates(candidates)
    return ranked[0] if ranked else None


def select_fallback(
    candidates: Iterable[CoverCandidate],
    canonical: CoverCandidate | None,
) -> CoverCandidate | None:
    """Best hotlink (no storage_key) whose URL differs from the canonical's."""
    canonical_url = canonical.url if canonical is not None else None
    for candidate in rank_candidates(candidates):
        if candidate.storage_key or not candidate.url:
            continue
        if candidate.url != canonical_url:
            return candidate
    return None


def build_descriptor(
    candidates: Iterable[CoverCandidate],
    public_url_for: Callable[[str], str] | None = None,
) -> CoverDescriptor | None:
    """Rank candidates and turn the winner into a read-side descriptor.

    Args:
        candidates: All rows of ONE book (errored rows are filtered here)
        public_url_for: Maps a storage key to a URL, used when a storage-held row
            has no url of its own

    Returns:
        Descriptor of the canonical cover, or None
    """
    rows = list(candidates)
    canonical = select_canonical(rows)
    if canonical is None:
        return None

    url = canonical.url
    if not url and canonical.storage_key and public_url_for is not None:
        url = public_url_for(canonical.storage_key)
    if not url:
        return None

    fallback = select_fallback(rows, canonical)
    return CoverDescriptor(
        canonical_url=url,
        source=canonical.source or "unknown",
        storage_key=canonical.storage_key,
        width=canonical.width,
        height=canonical.height,
        high_resolution=canonical.is_high_resolution,
        fallback_url=fallback.url if fallback is not None else None,
    )
