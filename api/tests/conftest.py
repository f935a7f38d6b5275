"""Shared fixtures."""

import pytest
from fastapi.testclient import TestClient

from src.main import app

from .fakes import Engine, FrozenClock, SampleCourse, build_engine, build_sample_course


@pytest.fixture
def client() -> TestClient:
    """Client for the application without its lifespan (no database)."""
    return TestClient(app)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def course() -> SampleCourse:
    """Two-module course: [video, document, quiz] then [video]."""
    return build_sample_course()


@pytest.fixture
def engine(course: SampleCourse, clock: FrozenClock) -> Engine:
    """Services wired to in-memory storage over the sample course."""
    return build_engine(course.catalog, clock)
