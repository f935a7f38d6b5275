"""Tests for attempt persistence against a mocked Cassandra session."""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from cassandra.cluster import Session

from src.assessment.models import AttemptState, QuizAttempt
from src.assessment.repository import OPEN_ATTEMPTS_SHARD, AttemptRepository


@pytest.fixture
def mock_session():
    """Mock Cassandra session; prepared statements are their CQL text."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda cql: cql)
    session.aexecute = AsyncMock(return_value=Mock(was_applied=True))
    return session


@pytest.fixture
def repository(mock_session) -> AttemptRepository:
    return AttemptRepository(session=mock_session, keyspace="test_keyspace")


@pytest.fixture
def attempt() -> QuizAttempt:
    return QuizAttempt(
        id=uuid4(),
        learner_id=uuid4(),
        quiz_id=uuid4(),
        part_id=uuid4(),
        course_id=uuid4(),
        attempt_number=1,
        responses={"q1": True},
        started_at=datetime(2026, 3, 2, 9, 0, tzinfo=UTC),
    )


def executed(mock_session) -> list[str]:
    return [c.args[0] for c in mock_session.aexecute.await_args_list]


class TestAttemptRepository:
    """AttemptRepository."""

    @pytest.mark.asyncio
    async def test_create_writes_lookup_and_open_index(
        self, repository, mock_session, attempt
    ):
        assert await repository.create_attempt(attempt) is True

        statements = executed(mock_session)
        assert "IF NOT EXISTS" in statements[0]
        assert "quiz_attempts_by_id" in statements[1]
        assert "open_quiz_attempts" in statements[2]

        params = mock_session.aexecute.await_args_list[0].args[1]
        assert json.loads(params[7]) == {"q1": True}

    @pytest.mark.asyncio
    async def test_create_refused_when_number_taken(
        self, repository, mock_session, attempt
    ):
        mock_session.aexecute.return_value = Mock(was_applied=False)

        assert await repository.create_attempt(attempt) is False
        assert mock_session.aexecute.await_count == 1

    @pytest.mark.asyncio
    async def test_closing_removes_from_open_index(
        self, repository, mock_session, attempt
    ):
        attempt.state = AttemptState.SUBMITTED.value

        await repository.save_attempt(attempt)

        last = mock_session.aexecute.await_args_list[-1]
        assert last.args[0].strip().startswith("DELETE FROM test_keyspace.open_quiz_attempts")
        assert last.args[1] == [OPEN_ATTEMPTS_SHARD, attempt.id]

    @pytest.mark.asyncio
    async def test_get_unknown_attempt(self, repository, mock_session):
        mock_session.aexecute.return_value = Mock(one=Mock(return_value=None))

        assert await repository.get_attempt(uuid4()) is None
