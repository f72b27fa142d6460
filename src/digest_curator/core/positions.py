"""Pure ordering functions for cycle articles.

Nothing here touches storage: each function takes the current article list
and returns a new one, leaving persistence to the caller.
"""

from dataclasses import replace
from typing import Optional

from digest_curator.core.entities import Article, PositionStage
from digest_curator.core.errors import PositionError


def listed_in_rank_order(articles: list[Article]) -> list[Article]:
    """Active, non-skipped articles sorted by rank."""
    return sorted((a for a in articles if a.is_listed), key=lambda a: a.rank)


def lead_article(articles: list[Article]) -> Optional[Article]:
    """The first listed article, None when nothing is listed."""
    listed = listed_in_rank_order(articles)
    return listed[0] if listed else None


def compute_positions(articles: list[Article]) -> dict[str, Optional[int]]:
    """Map article id to its dense 1-based position, None when not listed."""
    positions: dict[str, Optional[int]] = {a.id: None for a in articles}
    for position, article in enumerate(listed_in_rank_order(articles), 1):
        positions[article.id] = position
    return positions


def assign_positions(articles: list[Article], stage: PositionStage) -> list[Article]:
    """Return copies of the articles with review or final positions filled in.

    Depends only on rank, is_active and skipped, never on previously stored
    positions, so running it twice gives the same result.
    """
    positions = compute_positions(articles)
    field_name = "review_position" if stage == PositionStage.REVIEW else "final_position"
    return [replace(a, **{field_name: positions[a.id]}) for a in articles]


def renumber_ranks(ordered: list[Article]) -> list[Article]:
    """Assign dense ranks 1..M following list order."""
    return [replace(a, rank=i) for i, a in enumerate(ordered, 1)]


def move_article(articles: list[Article], article_id: str, new_position: int) -> list[Article]:
    """Move an article to a 1-based position among listed articles.

    The article is removed from the ordering and reinserted so that it ends
    up at ``new_position`` among active, non-skipped articles; articles
    between the old and new spot shift by one. Unlisted articles keep their
    relative order. All ranks are renumbered densely afterwards.

    The target must itself be listed. Un-skipping clears the flag before
    placing the article.

    Raises:
        PositionError: unknown article, inactive article or position out of range
    """
    ordered = sorted(articles, key=lambda a: a.rank)
    target = next((a for a in ordered if a.id == article_id), None)
    if target is None:
        raise PositionError(f"Article {article_id} is not part of this cycle")
    if not target.is_listed:
        raise PositionError(f"Article {article_id} is not in the active ordering")

    rest = [a for a in ordered if a.id != article_id]
    listed_rest = [a for a in rest if a.is_listed]
    max_position = len(listed_rest) + 1
    if not 1 <= new_position <= max_position:
        raise PositionError(
            f"Position {new_position} out of range (1..{max_position})"
        )

    if new_position <= len(listed_rest):
        anchor = rest.index(listed_rest[new_position - 1])
    elif listed_rest:
        anchor = rest.index(listed_rest[-1]) + 1
    else:
        anchor = len(rest)

    rest.insert(anchor, target)
    return renumber_ranks(rest)


def append_to_listed(articles: list[Article], article_id: str) -> list[Article]:
    """Move a listed article right after the last other listed article."""
    listed_count = len(listed_in_rank_order(articles))
    return move_article(articles, article_id, listed_count)
