"""CLI entry point for digest curator.

One command per pipeline stage so the scheduler can trigger (and re-run)
each stage independently.
"""

import asyncio
from datetime import date
from pathlib import Path
from typing import Optional

import typer

from digest_curator.adapters.llm import ClaudeClient
from digest_curator.adapters.sources import RSSFeedSource
from digest_curator.adapters.storage import YAMLCurationRepository
from digest_curator.config import Settings, get_settings
from digest_curator.core import CurationError, CycleStatus, PositionStage, StageReport
from digest_curator.use_cases import (
    CycleService,
    DedupService,
    EditorialService,
    IngestionService,
    RatingService,
    SelectionService,
    SubjectLineService,
)

app = typer.Typer(help="Curate, rank and track stories for the daily local digest.")

CONFIG_OPTION = typer.Option(Path("config.yaml"), "--config", "-c", help="Path to config.yaml")


def _settings(config: Path) -> Settings:
    return get_settings(config)


def _repository(settings: Settings) -> YAMLCurationRepository:
    return YAMLCurationRepository(settings.storage_dir)


def _subject_lines(settings: Settings, repository: YAMLCurationRepository) -> SubjectLineService:
    return SubjectLineService(repository, ClaudeClient(settings), settings.curation.subject_line_max_chars)


def _editorial(settings: Settings) -> EditorialService:
    """Editorial service that rewrites the subject line when the lead article changes."""
    repository = _repository(settings)
    subject_lines = _subject_lines(settings, repository)
    return EditorialService(
        repository,
        on_lead_change=lambda cycle_id: asyncio.run(subject_lines.refresh(cycle_id)),
    )


def _exit_with_report(report: StageReport) -> None:
    """Exit non-zero only when every unit failed."""
    if report.failed and not report.succeeded:
        raise typer.Exit(code=2)


def _fail(error: Exception) -> None:
    print(f"❌ {error}")
    raise typer.Exit(code=1)


@app.command("create-cycle")
def create_cycle(
    target_date: Optional[str] = typer.Argument(None, help="YYYY-MM-DD, defaults to today"),
    articles: Optional[int] = typer.Option(None, help="Number of articles to select"),
    config: Path = CONFIG_OPTION,
) -> None:
    """Create (or show) the cycle for a date."""
    settings = _settings(config)
    service = CycleService(_repository(settings), settings.curation.target_article_count)
    day = date.fromisoformat(target_date) if target_date else date.today()
    cycle = service.get_or_create(day, articles)
    print(cycle.id)


@app.command()
def ingest(cycle_id: str, config: Path = CONFIG_OPTION) -> None:
    """Pull active feeds into the cycle."""
    settings = _settings(config)
    excluded = list(settings.curation.excluded_sources)
    excluded.extend(f.name for f in settings.active_feeds if f.excluded)
    sources = [RSSFeedSource(name=f.name, url=f.url) for f in settings.active_feeds]

    service = IngestionService(
        repository=_repository(settings),
        sources=sources,
        excluded_sources=excluded,
        max_entry_age_hours=settings.curation.max_entry_age_hours,
    )
    try:
        report = asyncio.run(service.ingest(cycle_id))
    except CurationError as e:
        _fail(e)
    _exit_with_report(report)


@app.command()
def rate(cycle_id: str, config: Path = CONFIG_OPTION) -> None:
    """Rate unrated posts of the cycle."""
    settings = _settings(config)
    service = RatingService(
        repository=_repository(settings),
        evaluator=ClaudeClient(settings),
        concurrency=settings.curation.rating_concurrency,
    )
    try:
        report = asyncio.run(service.rate_cycle(cycle_id, settings.criteria_config()))
    except CurationError as e:
        _fail(e)
    _exit_with_report(report)


@app.command("recompute-totals")
def recompute_totals(cycle_id: str, config: Path = CONFIG_OPTION) -> None:
    """Recalculate rating totals from stored criterion scores."""
    settings = _settings(config)
    service = RatingService(_repository(settings), ClaudeClient(settings))
    try:
        report = service.recompute_totals(cycle_id)
    except CurationError as e:
        _fail(e)
    print(f"✓ Updated: {report.succeeded}, unchanged: {report.skipped}")


@app.command()
def dedup(cycle_id: str, config: Path = CONFIG_OPTION) -> None:
    """Group rated posts covering the same story."""
    settings = _settings(config)
    service = DedupService(_repository(settings), ClaudeClient(settings))
    try:
        asyncio.run(service.dedup_cycle(cycle_id))
    except CurationError as e:
        _fail(e)


@app.command()
def select(cycle_id: str, config: Path = CONFIG_OPTION) -> None:
    """Select top posts and generate their articles."""
    settings = _settings(config)
    repository = _repository(settings)
    client = ClaudeClient(settings)
    service = SelectionService(
        repository,
        client,
        fact_checker=client,
        subject_lines=_subject_lines(settings, repository),
    )
    try:
        asyncio.run(service.select_cycle(cycle_id))
    except CurationError as e:
        _fail(e)


@app.command()
def skip(article_id: str, config: Path = CONFIG_OPTION) -> None:
    """Skip an article."""
    service = _editorial(_settings(config))
    try:
        _print_articles(service.skip(article_id))
    except CurationError as e:
        _fail(e)


@app.command()
def unskip(
    article_id: str,
    position: Optional[int] = typer.Option(None, help="1-based position, defaults to last"),
    config: Path = CONFIG_OPTION,
) -> None:
    """Restore a skipped article."""
    service = _editorial(_settings(config))
    try:
        _print_articles(service.unskip(article_id, position))
    except CurationError as e:
        _fail(e)


@app.command()
def reorder(article_id: str, position: int, config: Path = CONFIG_OPTION) -> None:
    """Move an article to a new 1-based position."""
    service = _editorial(_settings(config))
    try:
        _print_articles(service.reorder(article_id, position))
    except CurationError as e:
        _fail(e)


@app.command("set-active")
def set_active(
    article_id: str,
    active: bool = typer.Option(True, "--active/--inactive", help="Keep or drop the article from the ordering"),
    config: Path = CONFIG_OPTION,
) -> None:
    """Activate or deactivate an article."""
    service = _editorial(_settings(config))
    try:
        _print_articles(service.set_active(article_id, active))
    except CurationError as e:
        _fail(e)


@app.command()
def positions(cycle_id: str, stage: PositionStage, config: Path = CONFIG_OPTION) -> None:
    """Reassign review or final positions from the current ordering."""
    service = _editorial(_settings(config))
    try:
        _print_articles(service.recompute_positions(cycle_id, stage))
    except CurationError as e:
        _fail(e)


@app.command()
def transition(cycle_id: str, status: CycleStatus, config: Path = CONFIG_OPTION) -> None:
    """Move a cycle to a new status."""
    service = _editorial(_settings(config))
    try:
        service.transition(cycle_id, status)
    except CurationError as e:
        _fail(e)


@app.command("subject-line")
def subject_line(cycle_id: str, config: Path = CONFIG_OPTION) -> None:
    """Rewrite the subject line from the current lead article."""
    settings = _settings(config)
    service = _subject_lines(settings, _repository(settings))
    try:
        asyncio.run(service.refresh(cycle_id))
    except CurationError as e:
        _fail(e)


@app.command()
def reset(cycle_id: str, config: Path = CONFIG_OPTION) -> None:
    """Delete the cycle's posts, ratings, groups and articles."""
    settings = _settings(config)
    service = CycleService(_repository(settings), settings.curation.target_article_count)
    try:
        service.reset(cycle_id)
    except CurationError as e:
        _fail(e)


@app.command()
def show(cycle_id: str, config: Path = CONFIG_OPTION) -> None:
    """Print cycle counts and its article ordering."""
    settings = _settings(config)
    repository = _repository(settings)
    try:
        summary = CycleService(repository).summary(cycle_id)
    except CurationError as e:
        _fail(e)

    print("\n" + "=" * 70)
    print(f"🗓️  Cycle {summary['id']} ({summary['date']}) - {summary['status']}")
    print("=" * 70)
    if summary["subject_line"]:
        print(f"  ✉️  {summary['subject_line']}")
    for key in ("posts", "rated_posts", "duplicates", "articles", "active_articles"):
        print(f"  • {key}: {summary[key]}")
    _print_articles(repository.get_articles(cycle_id))


def _print_articles(articles: list) -> None:
    if not articles:
        print("\nNo articles yet.")
        return

    print()
    for article in articles:
        flags = []
        if article.skipped:
            flags.append("skipped")
        if not article.is_active:
            flags.append("inactive")
        if article.used_fallback:
            flags.append("original text")
        if article.fact_check_score is not None:
            flags.append(f"fact check {article.fact_check_score:g}")
        review = article.review_position if article.review_position is not None else "-"
        final = article.final_position if article.final_position is not None else "-"
        suffix = f" ({', '.join(flags)})" if flags else ""
        print(f"  #{article.rank} [review {review} | final {final}] {article.headline[:60]}{suffix}")
        print(f"     └─ {article.id}")


if __name__ == "__main__":
    app()
