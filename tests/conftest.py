"""Shared fixtures for tests."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from bookmate.config import AppConfig
from bookmate.library.database import Database
from bookmate.library.store import LibraryStore


class FakeClock:
    def __init__(self, start: float) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 5, 15, 12, 0).timestamp())


@pytest.fixture
def db(tmp_path: Path) -> Database:
    db_path = tmp_path / "test.db"
    database = Database(db_path)
    yield database
    database.close()


@pytest.fixture
def store(clock: FakeClock) -> LibraryStore:
    return LibraryStore(clock=clock)


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        data_dir=tmp_path / "data",
        config_dir=tmp_path / "config",
    )
