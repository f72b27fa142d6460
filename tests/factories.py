"""Builders for test data."""

import uuid
from datetime import datetime, timezone

from digest_curator.core import Article, CriterionScore, Post, Rating


def make_post(cycle_id: str, title: str, external_id: str = "", sequence: int = 0) -> Post:
    """Build a post with sensible defaults."""
    return Post(
        id=uuid.uuid4().hex,
        cycle_id=cycle_id,
        external_id=external_id or f"guid-{title}",
        feed_name="City News",
        title=title,
        description=f"{title} description",
        content=f"{title} content",
        ingested_at=datetime(2025, 1, 7, 8, 0, tzinfo=timezone.utc),
        sequence=sequence,
    )


def make_rating(post_id: str, score: float, weight: float = 1.0) -> Rating:
    return Rating(
        post_id=post_id,
        criteria=[CriterionScore(name="Interest Level", score=score, reason="test", weight=weight)],
        rated_at=datetime(2025, 1, 7, 9, 0, tzinfo=timezone.utc),
    )


def make_articles(count: int, cycle_id: str = "cycle-1") -> list[Article]:
    return [
        Article(
            id=f"a{i}",
            cycle_id=cycle_id,
            post_id=f"p{i}",
            headline=f"Headline {i}",
            body=f"Body {i}",
            rank=i,
        )
        for i in range(1, count + 1)
    ]
