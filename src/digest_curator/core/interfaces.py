"""Core interfaces for adapters."""

from abc import ABC, abstractmethod
from datetime import date
from typing import ContextManager, Optional

from digest_curator.core.entities import (
    Article,
    Criterion,
    CriterionVerdict,
    Cycle,
    DuplicateGroup,
    FactCheck,
    FeedEntry,
    FeedHealth,
    GeneratedContent,
    ParseResult,
    Post,
    Rating,
    TopicCluster,
)


class FeedSource(ABC):
    """Interface for pulling entries from one external feed."""

    name: str

    @abstractmethod
    async def fetch_entries(self) -> list[FeedEntry]:
        """Fetch the feed's current entries."""
        pass


class CriteriaEvaluator(ABC):
    """Interface for scoring a post against one criterion."""

    @abstractmethod
    async def evaluate_criterion(
        self, criterion: Criterion, post: Post
    ) -> ParseResult[CriterionVerdict]:
        """Score post for the criterion."""
        pass


class TopicClusterer(ABC):
    """Interface for grouping posts that cover the same story."""

    @abstractmethod
    async def cluster_topics(self, posts: list[Post]) -> ParseResult[list[TopicCluster]]:
        """Return clusters of indices into ``posts``."""
        pass


class ContentGenerator(ABC):
    """Interface for writing newsletter copy."""

    @abstractmethod
    async def generate_content(self, post: Post) -> ParseResult[GeneratedContent]:
        """Generate headline and body for the post."""
        pass


class FactChecker(ABC):
    """Interface for checking generated copy against its source."""

    @abstractmethod
    async def fact_check(self, body: str, source_text: str) -> ParseResult[FactCheck]:
        pass


class SubjectLineWriter(ABC):
    """Interface for writing the issue subject line."""

    @abstractmethod
    async def write_subject_line(self, article: Article) -> ParseResult[str]:
        """Subject line built around the lead article."""
        pass


class CurationRepository(ABC):
    """Persistence port for cycles and everything they own."""

    @abstractmethod
    def lock(self, cycle_id: str) -> ContextManager[None]:
        """Exclusive, re-entrant lock on one cycle, held across processes."""
        pass

    @abstractmethod
    def create_cycle(self, cycle: Cycle) -> Cycle:
        pass

    @abstractmethod
    def get_cycle(self, cycle_id: str) -> Cycle:
        """Raises NotFoundError for unknown ids."""
        pass

    @abstractmethod
    def find_cycle_by_date(self, target_date: date) -> Optional[Cycle]:
        pass

    @abstractmethod
    def save_cycle(self, cycle: Cycle) -> None:
        pass

    @abstractmethod
    def reset_cycle(self, cycle_id: str) -> None:
        """Delete posts, ratings, duplicate groups and articles of the cycle."""
        pass

    @abstractmethod
    def add_posts(self, cycle_id: str, posts: list[Post]) -> list[Post]:
        """Insert posts whose external id is new for the cycle, return inserted."""
        pass

    @abstractmethod
    def get_posts(self, cycle_id: str) -> list[Post]:
        """Posts in ingestion order."""
        pass

    @abstractmethod
    def save_rating(self, cycle_id: str, rating: Rating) -> None:
        pass

    @abstractmethod
    def get_ratings(self, cycle_id: str) -> dict[str, Rating]:
        """Ratings keyed by post id."""
        pass

    @abstractmethod
    def get_stored_totals(self, cycle_id: str) -> dict[str, float]:
        """Totals as written in storage, keyed by post id."""
        pass

    @abstractmethod
    def replace_ratings(self, cycle_id: str, ratings: list[Rating]) -> None:
        pass

    @abstractmethod
    def save_duplicate_groups(
        self, cycle_id: str, groups: list[DuplicateGroup], checked_post_ids: list[str]
    ) -> None:
        """Store groups and mark posts as checked in a single write."""
        pass

    @abstractmethod
    def get_duplicate_groups(self, cycle_id: str) -> list[DuplicateGroup]:
        pass

    @abstractmethod
    def get_articles(self, cycle_id: str) -> list[Article]:
        pass

    @abstractmethod
    def save_articles(self, cycle_id: str, articles: list[Article]) -> None:
        """Replace the cycle's articles in a single write."""
        pass

    @abstractmethod
    def find_article(self, article_id: str) -> Article:
        """Raises NotFoundError for unknown ids."""
        pass

    @abstractmethod
    def get_feed_health(self, name: str) -> FeedHealth:
        pass

    @abstractmethod
    def save_feed_health(self, health: FeedHealth) -> None:
        pass
