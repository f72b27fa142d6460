"""Business logic use cases.

Each pipeline stage (ingest, rate, dedup, select) is a separate service
invoked on its own by the scheduler; none of them calls the next.
"""

import asyncio
import uuid
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

from digest_curator.core import (
    Article,
    ConsistencyError,
    ContentGenerator,
    CriteriaConfig,
    CriteriaEvaluator,
    CriterionScore,
    Cycle,
    CycleStatus,
    CurationRepository,
    FactCheck,
    FactChecker,
    FeedSource,
    MalformedResponse,
    NotFoundError,
    Ok,
    ParseResult,
    PositionStage,
    Post,
    Rating,
    SelectionExistsError,
    StageReport,
    SubjectLineWriter,
    TopicClusterer,
)
from digest_curator.core.curation import plan_duplicate_groups, rank_posts
from digest_curator.core.normalize import normalize_entry
from digest_curator.core.positions import (
    append_to_listed,
    assign_positions,
    lead_article,
    move_article,
)
from digest_curator.core.state import (
    REVIEWED_STATUSES,
    check_mutable,
    check_transition,
    position_stage_for,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _print_stage(title: str) -> None:
    print("\n" + "=" * 70)
    print(title)
    print("=" * 70)


def _print_report(report: StageReport) -> None:
    print(f"\n✓ Succeeded: {report.succeeded}")
    print(f"• Skipped: {report.skipped}")
    if report.failed:
        print(f"⚠️  Failed: {report.failed}")
    for key, value in report.details.items():
        print(f"  └─ {key}: {value}")


class CycleService:
    """Create, inspect and reset publication cycles."""

    def __init__(self, repository: CurationRepository, target_article_count: int = 5) -> None:
        self.repository = repository
        self.target_article_count = target_article_count

    def get_or_create(self, target_date: date, target_article_count: Optional[int] = None) -> Cycle:
        """Return the cycle for a date, creating a draft one if needed."""
        existing = self.repository.find_cycle_by_date(target_date)
        if existing:
            return existing

        cycle = Cycle(
            id=uuid.uuid4().hex,
            target_date=target_date,
            status=CycleStatus.DRAFT,
            created_at=_utcnow(),
            target_article_count=target_article_count or self.target_article_count,
        )
        print(f"🗓️  Created cycle {cycle.id} for {target_date.isoformat()}")
        return self.repository.create_cycle(cycle)

    def reset(self, cycle_id: str) -> Cycle:
        """Delete everything the cycle owns and return it to draft."""
        with self.repository.lock(cycle_id):
            cycle = self.repository.get_cycle(cycle_id)
            check_mutable(cycle.status)

            self.repository.reset_cycle(cycle_id)
            cycle.status = CycleStatus.DRAFT
            cycle.subject_line = ""
            self.repository.save_cycle(cycle)
        print(f"♻️  Cycle {cycle_id} reset")
        return cycle

    def summary(self, cycle_id: str) -> dict:
        """Counts describing where the cycle stands."""
        cycle = self.repository.get_cycle(cycle_id)
        posts = self.repository.get_posts(cycle_id)
        ratings = self.repository.get_ratings(cycle_id)
        articles = self.repository.get_articles(cycle_id)

        return {
            "id": cycle.id,
            "date": cycle.target_date.isoformat(),
            "status": cycle.status.value,
            "subject_line": cycle.subject_line,
            "target_article_count": cycle.target_article_count,
            "posts": len(posts),
            "rated_posts": sum(1 for p in posts if p.id in ratings),
            "duplicates": sum(1 for p in posts if p.is_duplicate),
            "articles": len(articles),
            "active_articles": sum(1 for a in articles if a.is_listed),
        }


class IngestionService:
    """Collect feed entries into posts of a cycle."""

    def __init__(
        self,
        repository: CurationRepository,
        sources: list[FeedSource],
        excluded_sources: Optional[list[str]] = None,
        max_entry_age_hours: Optional[float] = 24,
    ) -> None:
        self.repository = repository
        self.sources = sources
        self.excluded_sources = set(excluded_sources or [])
        self.max_entry_age_hours = max_entry_age_hours

    async def ingest(self, cycle_id: str, now: Optional[datetime] = None) -> StageReport:
        """Fetch every source and insert posts not yet seen in the cycle.

        A failing source is reported and skipped; the others still run.
        """
        now = now or _utcnow()
        cycle = self.repository.get_cycle(cycle_id)
        check_mutable(cycle.status)

        report = StageReport(stage="ingest")
        _print_stage("📥 INGESTION")

        for source in self.sources:
            emoji = getattr(source, "emoji", "🔍")
            print(f"\n{emoji} Fetching: {source.name}")

            if source.name in self.excluded_sources:
                print("  └─ Excluded source, skipped")
                report.details["excluded_feeds"] = report.details.get("excluded_feeds", 0) + 1
                continue

            health = self.repository.get_feed_health(source.name)
            try:
                entries = await source.fetch_entries()
            except Exception as e:
                print(f"  └─ ❌ Error: {e}")
                report.record_failure(f"{source.name}: {e}")
                health.processing_errors += 1
                self.repository.save_feed_health(health)
                continue

            posts, skipped = self._normalize(entries, source.name, cycle_id, now)
            inserted = self.repository.add_posts(cycle_id, posts)
            already_seen = len(posts) - len(inserted)

            report.succeeded += len(inserted)
            report.skipped += skipped + already_seen
            print(f"  └─ Entries: {len(entries)}, new posts: {len(inserted)}, skipped: {skipped + already_seen}")

            health.last_processed = now
            health.processing_errors = 0
            self.repository.save_feed_health(health)

        _print_report(report)
        return report

    def _normalize(
        self, entries: list, feed_name: str, cycle_id: str, now: datetime
    ) -> tuple[list[Post], int]:
        """Normalize entries, dropping excluded, stale and unusable ones."""
        posts = []
        skipped = 0
        cutoff = None
        if self.max_entry_age_hours is not None:
            cutoff = now - timedelta(hours=self.max_entry_age_hours)

        for entry in entries:
            # Excluded authors never reach normalization
            if entry.author and entry.author.strip() in self.excluded_sources:
                skipped += 1
                continue

            try:
                post = normalize_entry(entry, feed_name, cycle_id, now)
            except ValueError as e:
                print(f"  └─ Skipping entry {entry.external_id or entry.link}: {e}")
                skipped += 1
                continue

            if cutoff is not None:
                if post.published_at is None or not cutoff <= post.published_at <= now:
                    skipped += 1
                    continue

            posts.append(post)

        return posts, skipped


class RatingService:
    """Score unrated posts against the configured criteria."""

    def __init__(
        self,
        repository: CurationRepository,
        evaluator: CriteriaEvaluator,
        concurrency: int = 3,
    ) -> None:
        self.repository = repository
        self.evaluator = evaluator
        self.concurrency = max(1, concurrency)

    async def rate_cycle(self, cycle_id: str, criteria: CriteriaConfig) -> StageReport:
        """Rate every unrated post of the cycle.

        ``criteria`` is fixed for the whole run. A post is rated only when
        every enabled criterion returns a valid score; otherwise nothing is
        stored and the post stays unrated.
        """
        cycle = self.repository.get_cycle(cycle_id)
        check_mutable(cycle.status)

        posts = self.repository.get_posts(cycle_id)
        rated = self.repository.get_ratings(cycle_id)
        unrated = [p for p in posts if p.id not in rated]

        report = StageReport(stage="rate", skipped=len(posts) - len(unrated))
        _print_stage("🔍 RATING")
        names = ", ".join(f"{c.name} ×{c.weight:g}" for c in criteria.enabled)
        print(f"Criteria: {names}")
        print(f"Rating {len(unrated)} posts ({report.skipped} already rated)...")

        semaphore = asyncio.Semaphore(self.concurrency)

        async def rate_one(index: int, post: Post) -> None:
            async with semaphore:
                print(f"\n  [{index}/{len(unrated)}] {post.title[:70]}")
                try:
                    result = await self._rate_post(post, criteria)
                    if isinstance(result, MalformedResponse):
                        print(f"  └─ ✗ Not rated: {result.error}")
                        report.record_failure(f"{post.id}: {result.error}")
                        return
                    self.repository.save_rating(cycle_id, result.value)
                except Exception as e:
                    print(f"  └─ ⚠️  Error: {e}")
                    report.record_failure(f"{post.id}: {e}")
                    return

                report.succeeded += 1
                print(f"  └─ ✓ Total: {result.value.total:g}")

        await asyncio.gather(*(rate_one(i, p) for i, p in enumerate(unrated, 1)))

        _print_report(report)
        return report

    async def _rate_post(self, post: Post, criteria: CriteriaConfig) -> ParseResult[Rating]:
        scores = []
        for criterion in criteria.enabled:
            result = await self.evaluator.evaluate_criterion(criterion, post)
            if isinstance(result, MalformedResponse):
                return MalformedResponse(raw=result.raw, error=f"{criterion.name}: {result.error}")

            verdict = result.value
            if not criteria.in_range(verdict.score):
                return MalformedResponse(
                    raw=str(verdict.score),
                    error=(
                        f"{criterion.name}: score {verdict.score:g} outside "
                        f"{criteria.score_min:g}..{criteria.score_max:g}"
                    ),
                )

            scores.append(CriterionScore(
                name=criterion.name,
                score=verdict.score,
                reason=verdict.reason,
                weight=criterion.weight,
            ))

        return Ok(Rating(post_id=post.id, criteria=scores, rated_at=_utcnow()))

    def recompute_totals(self, cycle_id: str) -> StageReport:
        """Rewrite stored totals that disagree with their criterion scores.

        Ranking always uses the total derived from the scores, so this only
        repairs the copy kept in storage. Nothing is re-evaluated.
        """
        report = StageReport(stage="recompute_totals")
        with self.repository.lock(cycle_id):
            ratings = self.repository.get_ratings(cycle_id)
            stored = self.repository.get_stored_totals(cycle_id)

            for post_id, rating in ratings.items():
                if stored.get(post_id) != rating.total:
                    print(f"  └─ {post_id}: {stored.get(post_id)} → {rating.total:g}")
                    report.succeeded += 1
                else:
                    report.skipped += 1

            if report.succeeded:
                self.repository.replace_ratings(cycle_id, list(ratings.values()))
        return report


class DedupService:
    """Group rated posts that cover the same story."""

    def __init__(self, repository: CurationRepository, clusterer: TopicClusterer) -> None:
        self.repository = repository
        self.clusterer = clusterer

    async def dedup_cycle(self, cycle_id: str) -> StageReport:
        """Run one clustering pass over rated posts not yet checked.

        Fails open: if the clustering call errors or returns garbage, no
        post is marked and every rated post stays selectable.
        """
        cycle = self.repository.get_cycle(cycle_id)
        check_mutable(cycle.status)

        posts = self.repository.get_posts(cycle_id)
        ratings = self.repository.get_ratings(cycle_id)
        grouped = {
            post_id
            for group in self.repository.get_duplicate_groups(cycle_id)
            for post_id in group.post_ids
        }
        candidates = [
            p for p in posts
            if p.id in ratings and not p.dedup_checked and p.id not in grouped
        ]

        report = StageReport(stage="dedup")
        _print_stage("🧩 TOPIC DEDUPLICATION")

        if len(candidates) < 2:
            print(f"Only {len(candidates)} candidate(s), nothing to compare")
            report.skipped = len(candidates)
            return report

        print(f"Clustering {len(candidates)} posts...")
        try:
            result = await self.clusterer.cluster_topics(candidates)
        except Exception as e:
            print(f"⚠️  Clustering failed, all posts stay selectable: {e}")
            report.record_failure(str(e))
            report.skipped = len(candidates)
            return report

        if isinstance(result, MalformedResponse):
            print(f"⚠️  Unusable clustering response, all posts stay selectable: {result.error}")
            report.record_failure(result.error)
            report.skipped = len(candidates)
            return report

        groups = plan_duplicate_groups(cycle_id, candidates, result.value)
        self.repository.save_duplicate_groups(cycle_id, groups, [p.id for p in candidates])

        by_id = {p.id: p for p in candidates}
        for group in groups:
            print(f"\n  • {group.topic_signature}")
            print(f"    └─ keep: {by_id[group.primary_post_id].title[:60]}")
            for post_id in group.duplicate_post_ids:
                print(f"    └─ drop: {by_id[post_id].title[:60]}")

        report.succeeded = len(candidates)
        report.details["groups"] = len(groups)
        report.details["duplicates"] = sum(len(g.duplicate_post_ids) for g in groups)
        _print_report(report)
        return report


class SelectionService:
    """Pick the top posts of a cycle and turn them into articles."""

    def __init__(
        self,
        repository: CurationRepository,
        generator: ContentGenerator,
        fact_checker: Optional[FactChecker] = None,
        subject_lines: Optional["SubjectLineService"] = None,
    ) -> None:
        self.repository = repository
        self.generator = generator
        self.fact_checker = fact_checker
        self.subject_lines = subject_lines

    async def select_cycle(self, cycle_id: str) -> StageReport:
        """Select the top-N eligible posts and generate their articles.

        Generated bodies are checked against the source post when a fact
        checker is configured. A failed check is reported but keeps the
        article in place for the editor to judge. Refuses to run twice;
        reset the cycle to select again.
        """
        cycle = self.repository.get_cycle(cycle_id)
        check_mutable(cycle.status)
        self._check_no_articles(cycle_id)

        posts = self.repository.get_posts(cycle_id)
        ratings = self.repository.get_ratings(cycle_id)
        ranked = rank_posts(posts, ratings)
        selected = ranked[:cycle.target_article_count]

        report = StageReport(stage="select", skipped=len(ranked) - len(selected))
        _print_stage("📝 SELECTION & GENERATION")
        print(f"Eligible posts: {len(ranked)}, selecting {len(selected)}")

        articles = []
        fallbacks = 0
        for rank, post in enumerate(selected, 1):
            print(f"\n  #{rank} [{ratings[post.id].total:g}] {post.title[:70]}")
            headline, body, used_fallback = await self._write(post)
            if used_fallback:
                fallbacks += 1
                report.errors.append(f"{post.id}: generation failed, original text used")

            check = None
            if self.fact_checker and not used_fallback:
                check = await self._fact_check(body, post)
                if check is None:
                    _count(report, "fact_check_unavailable")
                elif not check.passed:
                    _count(report, "fact_check_failed")
                    report.errors.append(f"{post.id}: fact check failed ({check.score:g})")

            articles.append(Article(
                id=uuid.uuid4().hex,
                cycle_id=cycle_id,
                post_id=post.id,
                headline=headline,
                body=body,
                rank=rank,
                used_fallback=used_fallback,
                fact_check_score=check.score if check else None,
                fact_check_details=check.details if check else "",
            ))

        with self.repository.lock(cycle_id):
            self._check_no_articles(cycle_id)
            self.repository.save_articles(cycle_id, articles)

        report.succeeded = len(articles)
        report.details["fallback_copy"] = fallbacks
        _print_report(report)

        if self.subject_lines and articles:
            await self.subject_lines.refresh(cycle_id)
        return report

    def _check_no_articles(self, cycle_id: str) -> None:
        if self.repository.get_articles(cycle_id):
            raise SelectionExistsError(
                f"Cycle {cycle_id} already has articles; reset it before selecting again"
            )

    async def _write(self, post: Post) -> tuple[str, str, bool]:
        """Generated headline and body, or the post's own text on failure."""
        try:
            result = await self.generator.generate_content(post)
        except Exception as e:
            print(f"  └─ ⚠️  Generation error, using original text: {e}")
            return post.title, post.description, True

        if isinstance(result, MalformedResponse):
            print(f"  └─ ⚠️  Unusable generation, using original text: {result.error}")
            return post.title, post.description, True

        print(f"  └─ ✓ {result.value.headline[:70]}")
        return result.value.headline, result.value.body, False

    async def _fact_check(self, body: str, post: Post) -> Optional[FactCheck]:
        """Fact check result, None when the checker could not give one."""
        try:
            result = await self.fact_checker.fact_check(body, post.content or post.description)
        except Exception as e:
            print(f"  └─ ⚠️  Fact check error: {e}")
            return None

        if isinstance(result, MalformedResponse):
            print(f"  └─ ⚠️  Unusable fact check: {result.error}")
            return None

        check = result.value
        mark = "✓" if check.passed else "✗"
        print(f"  └─ {mark} Fact check: {check.score:g}")
        return check


class SubjectLineService:
    """Keep the cycle's subject line in step with its lead article."""

    def __init__(
        self,
        repository: CurationRepository,
        writer: SubjectLineWriter,
        max_length: int = 35,
    ) -> None:
        self.repository = repository
        self.writer = writer
        self.max_length = max_length

    async def refresh(self, cycle_id: str) -> Optional[str]:
        """Write a subject line for the first listed article and store it.

        Returns the new subject line. When there is no listed article or the
        writer fails, the stored subject line is left as it was and None is
        returned.
        """
        cycle = self.repository.get_cycle(cycle_id)
        check_mutable(cycle.status)

        lead = lead_article(self.repository.get_articles(cycle_id))
        if lead is None:
            print("✉️  No listed article, subject line unchanged")
            return None

        try:
            result = await self.writer.write_subject_line(lead)
        except Exception as e:
            print(f"✉️  ⚠️  Subject line error, keeping the current one: {e}")
            return None

        if isinstance(result, MalformedResponse):
            print(f"✉️  ⚠️  Unusable subject line, keeping the current one: {result.error}")
            return None

        subject = result.value.strip()[:self.max_length].rstrip()
        with self.repository.lock(cycle_id):
            cycle = self.repository.get_cycle(cycle_id)
            check_mutable(cycle.status)
            cycle.subject_line = subject
            self.repository.save_cycle(cycle)

        print(f"✉️  Subject line: {subject}")
        return subject


class EditorialService:
    """Manual editorial actions and cycle status transitions.

    Every read-modify-write of a cycle's articles runs under the repository's
    cycle lock, because reordering rewrites many articles based on the
    ordering read just before. ``on_lead_change`` is called with the cycle
    id after an edit changes which article is listed first.
    """

    def __init__(
        self,
        repository: CurationRepository,
        on_lead_change: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.repository = repository
        self.on_lead_change = on_lead_change

    def transition(self, cycle_id: str, new_status: CycleStatus) -> Cycle:
        """Move the cycle to a new status, recording positions where required."""
        with self.repository.lock(cycle_id):
            cycle = self.repository.get_cycle(cycle_id)
            check_transition(cycle.status, new_status)

            stage = position_stage_for(new_status)
            if stage is not None:
                articles = assign_positions(self.repository.get_articles(cycle_id), stage)
                self.repository.save_articles(cycle_id, articles)
                print(f"📌 {stage.value.capitalize()} positions assigned")

            previous = cycle.status
            cycle.status = new_status
            self.repository.save_cycle(cycle)
            print(f"✓ Cycle {cycle_id}: {previous.value} → {new_status.value}")
            return cycle

    def recompute_positions(self, cycle_id: str, stage: PositionStage) -> list[Article]:
        """Reassign review or final positions from the current ordering."""
        with self.repository.lock(cycle_id):
            cycle = self.repository.get_cycle(cycle_id)
            check_mutable(cycle.status)
            articles = assign_positions(self.repository.get_articles(cycle_id), stage)
            self.repository.save_articles(cycle_id, articles)
            return articles

    def skip(self, article_id: str) -> list[Article]:
        """Take an article out of the ordering."""
        def apply(articles: list[Article]) -> list[Article]:
            target = _find(articles, article_id)
            if target.skipped:
                raise ConsistencyError(f"Article {article_id} is already skipped")
            return [replace(a, skipped=True) if a.id == article_id else a for a in articles]

        return self._edit(article_id, apply)

    def unskip(self, article_id: str, position: Optional[int] = None) -> list[Article]:
        """Put a skipped article back, at the end unless a position is given."""
        def apply(articles: list[Article]) -> list[Article]:
            target = _find(articles, article_id)
            if not target.skipped:
                raise ConsistencyError(f"Article {article_id} is not skipped")
            restored = [replace(a, skipped=False) if a.id == article_id else a for a in articles]
            if position is None:
                return append_to_listed(restored, article_id)
            return move_article(restored, article_id, position)

        return self._edit(article_id, apply)

    def set_active(self, article_id: str, active: bool) -> list[Article]:
        """Activate or deactivate an article without deleting it."""
        def apply(articles: list[Article]) -> list[Article]:
            _find(articles, article_id)
            return [replace(a, is_active=active) if a.id == article_id else a for a in articles]

        return self._edit(article_id, apply)

    def reorder(self, article_id: str, new_position: int) -> list[Article]:
        """Move an article to a 1-based position in the active ordering."""
        return self._edit(article_id, lambda articles: move_article(articles, article_id, new_position))

    def _edit(
        self, article_id: str, apply: Callable[[list[Article]], list[Article]]
    ) -> list[Article]:
        cycle_id = self.repository.find_article(article_id).cycle_id
        with self.repository.lock(cycle_id):
            cycle = self.repository.get_cycle(cycle_id)
            check_mutable(cycle.status)

            current = self.repository.get_articles(cycle_id)
            previous_lead = lead_article(current)
            articles = apply(current)
            if cycle.status in REVIEWED_STATUSES:
                articles = assign_positions(articles, PositionStage.REVIEW)

            self.repository.save_articles(cycle_id, articles)
            new_lead = lead_article(articles)

        # Outside the lock, the callback writes to the same cycle
        lead_changed = new_lead is not None and (previous_lead is None or previous_lead.id != new_lead.id)
        if lead_changed and self.on_lead_change:
            print(f"📰 Lead article is now {new_lead.id}")
            self.on_lead_change(cycle_id)

        return sorted(articles, key=lambda a: a.rank)


def _count(report: StageReport, key: str) -> None:
    report.details[key] = report.details.get(key, 0) + 1


def _find(articles: list[Article], article_id: str) -> Article:
    for article in articles:
        if article.id == article_id:
            return article
    raise NotFoundError(f"Article {article_id} not found")
