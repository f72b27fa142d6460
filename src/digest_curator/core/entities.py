"""Core domain entities."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")


class CycleStatus(str, Enum):
    """Lifecycle status of a publication cycle."""

    DRAFT = "draft"
    IN_REVIEW = "in_review"
    CHANGES_MADE = "changes_made"
    APPROVED = "approved"
    SENT = "sent"


class PositionStage(str, Enum):
    """Checkpoint at which article positions are recorded."""

    REVIEW = "review"
    FINAL = "final"


@dataclass
class FeedEntry:
    """Raw entry as returned by a feed, before normalization."""

    external_id: str
    title: str
    description: str = ""
    content: str = ""
    link: str = ""
    published: str = ""
    author: Optional[str] = None
    image_candidates: list[str] = field(default_factory=list)


@dataclass
class Post:
    """Candidate story collected from a feed."""

    id: str
    cycle_id: str
    external_id: str
    feed_name: str
    title: str
    description: str
    content: str
    ingested_at: datetime
    sequence: int = 0
    author: Optional[str] = None
    source_url: Optional[str] = None
    image_url: Optional[str] = None
    published_at: Optional[datetime] = None
    dedup_checked: bool = False
    duplicate_group_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.external_id:
            raise ValueError("External id cannot be empty")
        if not self.title:
            raise ValueError("Title cannot be empty")

    @property
    def is_duplicate(self) -> bool:
        return self.duplicate_group_id is not None


@dataclass
class CriterionScore:
    """Score given to a post for a single criterion."""

    name: str
    score: float
    reason: str
    weight: float

    @property
    def weighted(self) -> float:
        return self.score * self.weight


def weighted_total(criteria: list[CriterionScore]) -> float:
    """Sum of score * weight over the given criteria."""
    return sum(c.weighted for c in criteria)


@dataclass
class Rating:
    """Multi-criteria rating of one post."""

    post_id: str
    criteria: list[CriterionScore]
    rated_at: datetime

    def __post_init__(self) -> None:
        if not self.criteria:
            raise ValueError("Rating needs at least one criterion score")
        if len(self.criteria) > 5:
            raise ValueError("Rating supports at most 5 criteria")

    @property
    def total(self) -> float:
        """Weighted total, always derived from the criterion scores."""
        return weighted_total(self.criteria)


@dataclass
class DuplicateGroup:
    """Posts of one cycle judged to cover the same topic."""

    id: str
    cycle_id: str
    topic_signature: str
    primary_post_id: str
    duplicate_post_ids: list[str]

    def __post_init__(self) -> None:
        if not self.duplicate_post_ids:
            raise ValueError("Duplicate group needs at least one duplicate")
        if self.primary_post_id in self.duplicate_post_ids:
            raise ValueError("Primary post cannot also be a duplicate")

    @property
    def post_ids(self) -> list[str]:
        return [self.primary_post_id, *self.duplicate_post_ids]


@dataclass
class Article:
    """Selected, generated newsletter unit derived from one post."""

    id: str
    cycle_id: str
    post_id: str
    headline: str
    body: str
    rank: int
    review_position: Optional[int] = None
    final_position: Optional[int] = None
    is_active: bool = True
    skipped: bool = False
    used_fallback: bool = False
    fact_check_score: Optional[float] = None
    fact_check_details: str = ""

    @property
    def is_listed(self) -> bool:
        """Whether the article takes part in the visible ordering."""
        return self.is_active and not self.skipped


@dataclass
class Cycle:
    """One publication run (the daily campaign)."""

    id: str
    target_date: date
    status: CycleStatus
    created_at: datetime
    target_article_count: int = 5
    subject_line: str = ""

    def __post_init__(self) -> None:
        if self.target_article_count < 1:
            raise ValueError("Target article count must be positive")


@dataclass(frozen=True)
class Criterion:
    """Configured scoring criterion."""

    name: str
    weight: float = 1.0
    enabled: bool = True
    prompt: str = ""


@dataclass(frozen=True)
class CriteriaConfig:
    """Criteria set used for one rating run."""

    criteria: tuple[Criterion, ...]
    score_min: float = 0.0
    score_max: float = 10.0

    @property
    def enabled(self) -> tuple[Criterion, ...]:
        return tuple(c for c in self.criteria if c.enabled)

    def in_range(self, score: float) -> bool:
        return self.score_min <= score <= self.score_max


@dataclass
class CriterionVerdict:
    """Parsed evaluator answer for one criterion."""

    score: float
    reason: str


@dataclass
class TopicCluster:
    """Indices of submitted posts judged to share a topic."""

    indices: list[int]
    topic: str = ""


@dataclass
class GeneratedContent:
    """Newsletter copy produced for a post."""

    headline: str
    body: str


@dataclass
class FactCheck:
    """Verdict on how faithfully generated copy follows its source."""

    score: float
    details: str
    passed: bool


@dataclass
class Ok(Generic[T]):
    """Successfully parsed external response."""

    value: T


@dataclass
class MalformedResponse:
    """External response that could not be parsed into the expected shape."""

    raw: str
    error: str


ParseResult = Union[Ok[T], MalformedResponse]


@dataclass
class FeedHealth:
    """Processing status of a feed."""

    name: str
    last_processed: Optional[datetime] = None
    processing_errors: int = 0


@dataclass
class StageReport:
    """Per-unit outcome tally of a pipeline stage."""

    stage: str
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    details: dict[str, int] = field(default_factory=dict)

    def record_failure(self, message: str) -> None:
        self.failed += 1
        self.errors.append(message)

    @property
    def total(self) -> int:
        return self.succeeded + self.skipped + self.failed
