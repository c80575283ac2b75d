"""Configuration pytest : src/ sur le path et stores SQLite en mémoire."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SRC_PATH = PROJECT_ROOT / "src"
TESTS_PATH = PROJECT_ROOT / "tests"
for path in (SRC_PATH, TESTS_PATH):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from veille_marches.persistence.award_store import AwardStore  # noqa: E402
from veille_marches.persistence.notice_store import NoticeStore  # noqa: E402
from veille_marches.persistence.tables import init_db  # noqa: E402


@pytest.fixture
def session_factory():
    """Base SQLite en mémoire, neuve pour chaque test."""
    return init_db("sqlite://")


@pytest.fixture
def notice_store(session_factory) -> NoticeStore:
    return NoticeStore(session_factory)


@pytest.fixture
def award_store(session_factory) -> AwardStore:
    return AwardStore(session_factory)
