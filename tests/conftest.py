"""Shared fixtures."""

from datetime import date, datetime, timezone
from pathlib import Path

import pytest

from digest_curator.adapters.storage import YAMLCurationRepository
from digest_curator.core import Cycle, CycleStatus


@pytest.fixture
def repository(tmp_path: Path) -> YAMLCurationRepository:
    """Repository backed by a temporary directory."""
    return YAMLCurationRepository(tmp_path)


@pytest.fixture
def cycle(repository: YAMLCurationRepository) -> Cycle:
    """Draft cycle for 2025-01-07 targeting two articles."""
    return repository.create_cycle(Cycle(
        id="cycle-1",
        target_date=date(2025, 1, 7),
        status=CycleStatus.DRAFT,
        created_at=datetime(2025, 1, 7, 6, 0, tzinfo=timezone.utc),
        target_article_count=2,
    ))
