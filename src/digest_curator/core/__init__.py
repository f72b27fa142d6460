"""Core domain layer."""

from digest_curator.core.entities import (
    Article,
    CriteriaConfig,
    Criterion,
    CriterionScore,
    CriterionVerdict,
    Cycle,
    CycleStatus,
    DuplicateGroup,
    FactCheck,
    FeedEntry,
    FeedHealth,
    GeneratedContent,
    MalformedResponse,
    Ok,
    ParseResult,
    PositionStage,
    Post,
    Rating,
    StageReport,
    TopicCluster,
    weighted_total,
)
from digest_curator.core.errors import (
    ConsistencyError,
    CurationError,
    CycleStateError,
    InvalidCriteriaError,
    NotFoundError,
    PositionError,
    SelectionExistsError,
)
from digest_curator.core.interfaces import (
    ContentGenerator,
    CriteriaEvaluator,
    CurationRepository,
    FactChecker,
    FeedSource,
    SubjectLineWriter,
    TopicClusterer,
)

__all__ = [
    "Article",
    "CriteriaConfig",
    "Criterion",
    "CriterionScore",
    "CriterionVerdict",
    "Cycle",
    "CycleStatus",
    "DuplicateGroup",
    "FactCheck",
    "FeedEntry",
    "FeedHealth",
    "GeneratedContent",
    "MalformedResponse",
    "Ok",
    "ParseResult",
    "PositionStage",
    "Post",
    "Rating",
    "StageReport",
    "TopicCluster",
    "weighted_total",
    "ConsistencyError",
    "CurationError",
    "CycleStateError",
    "InvalidCriteriaError",
    "NotFoundError",
    "PositionError",
    "SelectionExistsError",
    "ContentGenerator",
    "CriteriaEvaluator",
    "CurationRepository",
    "FactChecker",
    "FeedSource",
    "SubjectLineWriter",
    "TopicClusterer",
]
