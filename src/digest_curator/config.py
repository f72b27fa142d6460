"""Configuration management."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from digest_curator.core import CriteriaConfig, Criterion, InvalidCriteriaError

MAX_CRITERIA = 5


@dataclass
class ClaudeConfig:
    """Claude API settings."""
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 2048
    temperature: float = 0.3
    max_retries: int = 3
    initial_retry_delay: float = 2.0
    request_delay: float = 0.5


@dataclass
class PathsConfig:
    """Path settings."""
    storage_dir: Path = Path("data")


@dataclass
class CurationConfig:
    """Pipeline settings."""
    target_article_count: int = 5
    rating_concurrency: int = 3
    max_entry_age_hours: Optional[float] = 24
    score_min: float = 0.0
    score_max: float = 10.0
    excluded_sources: list[str] = field(default_factory=list)
    subject_line_max_chars: int = 40
    fact_check_pass_score: float = 20.0


@dataclass
class FeedConfig:
    """A configured feed."""
    name: str
    url: str
    active: bool = True
    excluded: bool = False


@dataclass
class PromptsConfig:
    """Prompts for LLM."""
    criterion: dict = field(default_factory=lambda: {
        "system": "You are an editor rating stories for a local daily newsletter.",
        "user": (
            "Rate this story for the criterion \"{criterion}\" on a scale of "
            "{score_min} to {score_max}.\n{guidance}\n\n"
            "Title: {title}\nDescription: {description}\nContent: {content}\n\n"
            "Respond with ONLY valid JSON: {{\"score\": <number>, \"reason\": \"<short explanation>\"}}"
        ),
    })
    topic_dedup: dict = field(default_factory=lambda: {
        "system": "You identify duplicate stories coming from multiple news sources.",
        "user": (
            "Group the articles below when they cover the same story. "
            "Use the article numbers shown.\n\n{articles}\n\n"
            "Respond with ONLY valid JSON: "
            "{{\"groups\": [{{\"topic_signature\": \"<brief topic>\", \"indices\": [<numbers>]}}]}}"
        ),
    })
    newsletter_writer: dict = field(default_factory=lambda: {
        "system": "You write short, factual local news items.",
        "user": (
            "Rewrite this post as a newsletter item of 40-75 words using only the "
            "information given. Write a new headline without colons.\n\n"
            "Title: {title}\nDescription: {description}\nContent: {content}\n\n"
            "Respond with ONLY valid JSON: {{\"headline\": \"<headline>\", \"content\": \"<article>\"}}"
        ),
    })
    fact_checker: dict = field(default_factory=lambda: {
        "system": "You check newsletter items against their source material.",
        "user": (
            "Check this newsletter article against its source.\n\n"
            "Newsletter article:\n{content}\n\nSource material:\n{source}\n\n"
            "Score accuracy, timeliness and intent alignment from 1 to 10 each. "
            "Subtract points for information not in the source, word-for-word copying, "
            "editorial commentary and vague time words like today or tomorrow. "
            "The total is their sum (3-30); {pass_score} or more passes.\n\n"
            "Respond with ONLY valid JSON: "
            "{{\"score\": <number 3-30>, \"details\": \"<violations found or none>\", \"passed\": <true|false>}}"
        ),
    })
    subject_line: dict = field(default_factory=lambda: {
        "system": "You write front-page headlines for a local daily newsletter.",
        "user": (
            "Write an email subject line for the issue led by this article.\n\n"
            "Headline: {headline}\nContent: {content}\n\n"
            "At most {max_chars} characters, Title Case, no year, no colons, "
            "active voice. Respond with ONLY the subject line text."
        ),
    })


def default_criteria() -> list[dict]:
    return [
        {"name": "Interest Level", "weight": 1.0, "enabled": True},
        {"name": "Local Relevance", "weight": 1.5, "enabled": True},
        {"name": "Community Impact", "weight": 1.0, "enabled": True},
        {"name": "Criterion 4", "weight": 1.0, "enabled": False},
        {"name": "Criterion 5", "weight": 1.0, "enabled": False},
    ]


@dataclass
class Settings:
    """Application settings."""

    # API Keys (from environment only)
    anthropic_api_key: str = ""

    # Config sections
    claude: ClaudeConfig = field(default_factory=ClaudeConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    curation: CurationConfig = field(default_factory=CurationConfig)
    prompts: PromptsConfig = field(default_factory=PromptsConfig)
    feeds: list[FeedConfig] = field(default_factory=list)
    criteria: list[dict] = field(default_factory=default_criteria)

    @property
    def storage_dir(self) -> Path:
        return self.paths.storage_dir

    @property
    def active_feeds(self) -> list[FeedConfig]:
        return [f for f in self.feeds if f.active]

    def criteria_config(self) -> CriteriaConfig:
        """Build the immutable criteria set for one rating run."""
        return build_criteria_config(
            self.criteria,
            score_min=self.curation.score_min,
            score_max=self.curation.score_max,
        )


def build_criteria_config(
    entries: list[dict], score_min: float = 0.0, score_max: float = 10.0
) -> CriteriaConfig:
    """Validate raw criteria entries and freeze them into a CriteriaConfig."""
    if not 1 <= len(entries) <= MAX_CRITERIA:
        raise InvalidCriteriaError(f"Expected 1-{MAX_CRITERIA} criteria, got {len(entries)}")
    if score_min >= score_max:
        raise InvalidCriteriaError("score_min must be lower than score_max")

    criteria = []
    for i, entry in enumerate(entries, 1):
        name = str(entry.get("name") or f"Criterion {i}")
        try:
            weight = float(entry.get("weight", 1.0))
        except (TypeError, ValueError):
            raise InvalidCriteriaError(f"Weight of '{name}' is not a number")
        if weight <= 0:
            raise InvalidCriteriaError(f"Weight of '{name}' must be positive")
        criteria.append(Criterion(
            name=name,
            weight=weight,
            enabled=bool(entry.get("enabled", True)),
            prompt=str(entry.get("prompt", "")),
        ))

    config = CriteriaConfig(criteria=tuple(criteria), score_min=score_min, score_max=score_max)
    if not config.enabled:
        raise InvalidCriteriaError("At least one criterion must be enabled")
    return config


def load_config(config_path: Path = Path("config.yaml")) -> dict:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_settings(config_path: Path = Path("config.yaml")) -> Settings:
    """Get application settings from YAML config and environment."""
    config = load_config(config_path)

    settings = Settings(anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""))

    if "claude" in config:
        for key, value in config["claude"].items():
            setattr(settings.claude, key, value)

    if "paths" in config:
        for key, value in config["paths"].items():
            setattr(settings.paths, key, Path(value))

    if "curation" in config:
        for key, value in config["curation"].items():
            setattr(settings.curation, key, value)

    if "prompts" in config:
        settings.prompts = PromptsConfig(**config["prompts"])

    if "feeds" in config:
        settings.feeds = [FeedConfig(**feed) for feed in config["feeds"] or []]

    if "criteria" in config:
        settings.criteria = list(config["criteria"] or [])

    return settings
