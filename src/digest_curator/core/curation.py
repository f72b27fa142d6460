"""Pure selection and grouping rules."""

import uuid

from digest_curator.core.entities import DuplicateGroup, Post, Rating, TopicCluster


def eligible_posts(posts: list[Post], ratings: dict[str, Rating]) -> list[Post]:
    """Rated posts that are not marked as duplicates."""
    return [p for p in posts if p.id in ratings and not p.is_duplicate]


def rank_posts(posts: list[Post], ratings: dict[str, Rating]) -> list[Post]:
    """Sort eligible posts by weighted total, highest first.

    Ties keep ingestion order (stable sort on sequence first).
    """
    candidates = sorted(eligible_posts(posts, ratings), key=lambda p: p.sequence)
    return sorted(candidates, key=lambda p: ratings[p.id].total, reverse=True)


def plan_duplicate_groups(
    cycle_id: str, posts: list[Post], clusters: list[TopicCluster]
) -> list[DuplicateGroup]:
    """Turn index clusters over ``posts`` into duplicate groups.

    The earliest post by input order is the primary, whatever order the
    cluster lists its indices in.
    Out-of-range indices are ignored and a post claimed by an earlier
    cluster is not reused, so every post ends up in at most one group.
    Clusters left with fewer than two members produce no group.
    """
    claimed: set[int] = set()
    groups = []

    for cluster in clusters:
        members = []
        for index in cluster.indices:
            if 0 <= index < len(posts) and index not in claimed and index not in members:
                members.append(index)

        if len(members) < 2:
            continue

        members.sort()
        claimed.update(members)
        primary = posts[members[0]]
        groups.append(DuplicateGroup(
            id=uuid.uuid4().hex,
            cycle_id=cycle_id,
            topic_signature=cluster.topic or primary.title,
            primary_post_id=primary.id,
            duplicate_post_ids=[posts[i].id for i in members[1:]],
        ))

    return groups
