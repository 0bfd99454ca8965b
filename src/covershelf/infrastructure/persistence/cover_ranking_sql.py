"""SQL twin of the cover ranker.

Hey future me - domain/value_objects/cover_ranking.py is the source of truth. This
module expresses the SAME ordering as a ROW_NUMBER() window so the canonical cover
can be picked inside one query (list pages, exports). If you change a threshold or
weight, change it there and the constants flow in here. The agreement test in
tests/unit/infrastructure/persistence/test_cover_ranking_sql.py keeps them honest.

    ROW_NUMBER() OVER (
        PARTITION BY book_id
        ORDER BY quality_rank, strict_priority, primary_size DESC,
                 secondary_size DESC, created_at DESC
    )
"""

from sqlalchemy import (
    ColumnElement,
    Float,
    Select,
    and_,
    case,
    cast,
    func,
    not_,
    or_,
    select,
)

from covershelf.domain.value_objects.cover_ranking import (
    EXCLUDED_URL_MARKERS,
    HIERARCHY_WEIGHT,
    HIGH_RES_WEIGHT,
    MAX_ASPECT_RATIO,
    MIN_ASPECT_RATIO,
    OTHER_VARIANT_RANK,
    RELAXED_TIER,
    STORAGE_WEIGHT,
    STRICT_MIN_HEIGHT,
    STRICT_MIN_WIDTH,
    STRICT_TIER,
    VARIANT_HIERARCHY,
)
from covershelf.infrastructure.persistence.models import CoverCandidateModel

Model = CoverCandidateModel


def has_value(column: ColumnElement[str | None]) -> ColumnElement[bool]:
    """SQL spelling of Python truthiness for a text column: NULL and '' are empty."""
    return and_(column.is_not(None), column != "")


def priority_score_expression() -> ColumnElement[int]:
    """CASE expression computing cover_ranking.priority_score in SQL."""
    storage_bucket = case((has_value(Model.storage_key), 0), else_=1)
    hierarchy = case(
        *[
            (func.lower(Model.image_type) == name, rank)
            for name, rank in VARIANT_HIERARCHY.items()
        ],
        else_=OTHER_VARIANT_RANK,
    )
    high_res = case(
        (Model.is_high_resolution.is_(True), 0),
        (Model.is_high_resolution.is_(False), 1),
        else_=2,
    )
    grayscale_penalty = case((Model.is_grayscale.is_(True), 1), else_=0)
    return (
        storage_bucket * STORAGE_WEIGHT
        + hierarchy * HIERARCHY_WEIGHT
        + high_res * HIGH_RES_WEIGHT
        + grayscale_penalty
    )


def strict_tier_condition() -> ColumnElement[bool]:
    """WHERE-style condition equivalent to cover_ranking.passes_strict_tier."""
    aspect_ratio = cast(Model.height, Float) / cast(Model.width, Float)
    lowered_url = func.lower(Model.url)
    return and_(
        Model.width.is_not(None),
        Model.height.is_not(None),
        Model.width >= STRICT_MIN_WIDTH,
        Model.height >= STRICT_MIN_HEIGHT,
        aspect_ratio >= MIN_ASPECT_RATIO,
        aspect_ratio <= MAX_ASPECT_RATIO,
        or_(
            Model.url.is_(None),
            not_(or_(*[lowered_url.contains(marker) for marker in EXCLUDED_URL_MARKERS])),
        ),
    )


def rankable_condition() -> ColumnElement[bool]:
    """Errored rows and rows with nothing to show are never ranked."""
    return and_(
        Model.download_error.is_(None),
        or_(has_value(Model.url), has_value(Model.storage_key)),
    )


def cover_rank_expression() -> ColumnElement[int]:
    """ROW_NUMBER() per book following the two-tier order (1 = canonical)."""
    strict = strict_tier_condition()
    area = func.coalesce(Model.width, 0) * func.coalesce(Model.height, 0)
    quality_rank = case((strict, STRICT_TIER), else_=RELAXED_TIER)
    strict_priority = case((strict, priority_score_expression()), else_=0)
    primary_size = case((strict, func.coalesce(Model.height, 0)), else_=area)
    secondary_size = case((strict, func.coalesce(Model.width, 0)), else_=0)
    return func.row_number().over(
        partition_by=Model.book_id,
        order_by=[
            quality_rank.asc(),
            strict_priority.asc(),
            primary_size.desc(),
            secondary_size.desc(),
            Model.created_at.desc(),
        ],
    )


def canonical_cover_query(book_ids: list[str] | None = None) -> Select:
    """SELECT the canonical CoverCandidateModel row of each book.

    Args:
        book_ids: Restrict to these books (None = all books)
    """
    ranked = select(Model.id, cover_rank_expression().label("cover_rank")).where(
        rankable_condition()
    )
    if book_ids is not None:
        ranked = ranked.where(Model.book_id.in_(book_ids))
    ranked_subq = ranked.subquery("ranked_covers")
    return (
        select(Model)
        .join(ranked_subq, ranked_subq.c.id == Model.id)
        .where(ranked_subq.c.cover_rank == 1)
        .execution_options(populate_existing=True)
    )
