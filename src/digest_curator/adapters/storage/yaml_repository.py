"""YAML file storage for cycles and their posts, ratings, groups and articles."""

import os
import tempfile
from contextlib import contextmanager
from dataclasses import asdict
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml
from filelock import FileLock, Timeout

from digest_curator.core import (
    Article,
    ConsistencyError,
    CriterionScore,
    Cycle,
    CycleStatus,
    CurationRepository,
    DuplicateGroup,
    FeedHealth,
    NotFoundError,
    Post,
    Rating,
)


class YAMLCurationRepository(CurationRepository):
    """Store each cycle as one YAML document.

    Every write rewrites the whole cycle document through a temporary file
    and an atomic rename, so multi-row updates land together or not at all.
    Read-modify-write cycles hold a lock file per cycle, so writers in
    other processes wait instead of overwriting each other.
    """

    def __init__(self, storage_dir: Path, lock_timeout: float = 30.0) -> None:
        self.storage_dir = storage_dir
        self.cycles_dir = storage_dir / "cycles"
        self.locks_dir = storage_dir / "locks"
        self.feeds_path = storage_dir / "feeds.yaml"
        self.lock_timeout = lock_timeout
        self._locks: dict[str, FileLock] = {}
        self._ensure_structure()

    def _ensure_structure(self) -> None:
        """Create directory structure for cycle documents and lock files."""
        self.cycles_dir.mkdir(parents=True, exist_ok=True)
        self.locks_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def lock(self, cycle_id: str) -> Iterator[None]:
        file_lock = self._locks.get(cycle_id)
        if file_lock is None:
            file_lock = FileLock(self.locks_dir / f"{cycle_id}.lock", timeout=self.lock_timeout)
            self._locks[cycle_id] = file_lock

        try:
            file_lock.acquire()
        except Timeout as e:
            raise ConsistencyError(f"Cycle {cycle_id} is locked by another writer") from e
        try:
            yield
        finally:
            file_lock.release()

    # Cycles

    def create_cycle(self, cycle: Cycle) -> Cycle:
        with self.lock(cycle.id):
            path = self._cycle_path(cycle.id)
            if path.exists():
                raise ValueError(f"Cycle {cycle.id} already exists")
            self._write(path, {
                "cycle": _cycle_to_dict(cycle),
                "posts": [],
                "ratings": [],
                "duplicate_groups": [],
                "articles": [],
            })
        return cycle

    def get_cycle(self, cycle_id: str) -> Cycle:
        return _cycle_from_dict(self._load(cycle_id)["cycle"])

    def find_cycle_by_date(self, target_date: date) -> Optional[Cycle]:
        for path in sorted(self.cycles_dir.glob("*.yaml")):
            data = self._read(path)
            if data and data["cycle"]["target_date"] == target_date.isoformat():
                return _cycle_from_dict(data["cycle"])
        return None

    def save_cycle(self, cycle: Cycle) -> None:
        with self._update(cycle.id) as data:
            data["cycle"] = _cycle_to_dict(cycle)

    def reset_cycle(self, cycle_id: str) -> None:
        with self._update(cycle_id) as data:
            data["posts"] = []
            data["ratings"] = []
            data["duplicate_groups"] = []
            data["articles"] = []

    # Posts

    def add_posts(self, cycle_id: str, posts: list[Post]) -> list[Post]:
        inserted = []
        with self._update(cycle_id) as data:
            known = {p["external_id"] for p in data["posts"]}
            next_sequence = max((p["sequence"] for p in data["posts"]), default=0) + 1

            for post in posts:
                if post.external_id in known:
                    continue
                known.add(post.external_id)
                post.sequence = next_sequence
                next_sequence += 1
                data["posts"].append(_post_to_dict(post))
                inserted.append(post)
        return inserted

    def get_posts(self, cycle_id: str) -> list[Post]:
        posts = [_post_from_dict(p) for p in self._load(cycle_id)["posts"]]
        return sorted(posts, key=lambda p: p.sequence)

    # Ratings

    def save_rating(self, cycle_id: str, rating: Rating) -> None:
        with self._update(cycle_id) as data:
            data["ratings"] = [r for r in data["ratings"] if r["post_id"] != rating.post_id]
            data["ratings"].append(_rating_to_dict(rating))

    def get_ratings(self, cycle_id: str) -> dict[str, Rating]:
        ratings = [_rating_from_dict(r) for r in self._load(cycle_id)["ratings"]]
        return {r.post_id: r for r in ratings}

    def get_stored_totals(self, cycle_id: str) -> dict[str, float]:
        return {r["post_id"]: r.get("total") for r in self._load(cycle_id)["ratings"]}

    def replace_ratings(self, cycle_id: str, ratings: list[Rating]) -> None:
        with self._update(cycle_id) as data:
            data["ratings"] = [_rating_to_dict(r) for r in ratings]

    # Duplicate groups

    def save_duplicate_groups(
        self, cycle_id: str, groups: list[DuplicateGroup], checked_post_ids: list[str]
    ) -> None:
        duplicate_of = {
            post_id: group.id
            for group in groups
            for post_id in group.duplicate_post_ids
        }
        checked = set(checked_post_ids)

        with self._update(cycle_id) as data:
            for post in data["posts"]:
                if post["id"] in checked:
                    post["dedup_checked"] = True
                if post["id"] in duplicate_of:
                    post["duplicate_group_id"] = duplicate_of[post["id"]]

            data["duplicate_groups"].extend(asdict(g) for g in groups)

    def get_duplicate_groups(self, cycle_id: str) -> list[DuplicateGroup]:
        return [DuplicateGroup(**g) for g in self._load(cycle_id)["duplicate_groups"]]

    # Articles

    def get_articles(self, cycle_id: str) -> list[Article]:
        articles = [Article(**a) for a in self._load(cycle_id)["articles"]]
        return sorted(articles, key=lambda a: a.rank)

    def save_articles(self, cycle_id: str, articles: list[Article]) -> None:
        with self._update(cycle_id) as data:
            data["articles"] = [asdict(a) for a in sorted(articles, key=lambda a: a.rank)]

    def find_article(self, article_id: str) -> Article:
        for path in self.cycles_dir.glob("*.yaml"):
            data = self._read(path)
            for article in (data or {}).get("articles", []):
                if article["id"] == article_id:
                    return Article(**article)
        raise NotFoundError(f"Article {article_id} not found")

    # Feed health

    def get_feed_health(self, name: str) -> FeedHealth:
        entry = self._read_feeds().get(name)
        if not entry:
            return FeedHealth(name=name)
        return FeedHealth(
            name=name,
            last_processed=_parse_datetime(entry.get("last_processed")),
            processing_errors=entry.get("processing_errors", 0),
        )

    def save_feed_health(self, health: FeedHealth) -> None:
        with self.lock("feeds"):
            feeds = self._read_feeds()
            feeds[health.name] = {
                "last_processed": health.last_processed.isoformat() if health.last_processed else None,
                "processing_errors": health.processing_errors,
            }
            self._write(self.feeds_path, feeds)

    def _read_feeds(self) -> dict:
        return self._read(self.feeds_path) or {}

    @contextmanager
    def _update(self, cycle_id: str) -> Iterator[dict]:
        """Load the cycle document under its lock and save it after the block."""
        with self.lock(cycle_id):
            data = self._load(cycle_id)
            yield data
            self._save(cycle_id, data)

    # File helpers

    def _cycle_path(self, cycle_id: str) -> Path:
        return self.cycles_dir / f"{cycle_id}.yaml"

    def _load(self, cycle_id: str) -> dict:
        data = self._read(self._cycle_path(cycle_id))
        if not data:
            raise NotFoundError(f"Cycle {cycle_id} not found")
        return data

    def _save(self, cycle_id: str, data: dict) -> None:
        self._write(self._cycle_path(cycle_id), data)

    def _read(self, path: Path) -> Optional[Any]:
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)

    def _write(self, path: Path, data: Any) -> None:
        """Write YAML atomically."""
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.dump(data, f, allow_unicode=True, default_flow_style=False, sort_keys=False)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _cycle_to_dict(cycle: Cycle) -> dict:
    return {
        "id": cycle.id,
        "target_date": cycle.target_date.isoformat(),
        "status": cycle.status.value,
        "created_at": cycle.created_at.isoformat(),
        "target_article_count": cycle.target_article_count,
        "subject_line": cycle.subject_line,
    }


def _cycle_from_dict(data: dict) -> Cycle:
    return Cycle(
        id=data["id"],
        target_date=date.fromisoformat(data["target_date"]),
        status=CycleStatus(data["status"]),
        created_at=datetime.fromisoformat(data["created_at"]),
        target_article_count=data.get("target_article_count", 5),
        subject_line=data.get("subject_line", ""),
    )


def _post_to_dict(post: Post) -> dict:
    data = asdict(post)
    data["ingested_at"] = post.ingested_at.isoformat()
    data["published_at"] = post.published_at.isoformat() if post.published_at else None
    return data


def _post_from_dict(data: dict) -> Post:
    data = dict(data)
    data["ingested_at"] = datetime.fromisoformat(data["ingested_at"])
    data["published_at"] = _parse_datetime(data.get("published_at"))
    return Post(**data)


def _rating_to_dict(rating: Rating) -> dict:
    return {
        "post_id": rating.post_id,
        "criteria": [asdict(c) for c in rating.criteria],
        "total": rating.total,
        "rated_at": rating.rated_at.isoformat(),
    }


def _rating_from_dict(data: dict) -> Rating:
    # The stored total is for readers of the file; Rating derives its own
    return Rating(
        post_id=data["post_id"],
        criteria=[CriterionScore(**c) for c in data["criteria"]],
        rated_at=datetime.fromisoformat(data["rated_at"]),
    )
