"""
Pytest fixtures for the PDCA kernel test suite.

Provides:
- Deterministic clock and captured JSON logs
- In-memory and SQLite-backed SQL repositories (``repo`` runs on both)
- Actor factories and wired services
- A ``goal_factory`` that creates goals through the public service

Environment Variables:
- None.  The SQL store runs against in-memory SQLite; set DATABASE_URL
  and use the ``postgres`` marker for tests that need PostgreSQL.
"""

import json
import logging
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from pdca_kernel.db.engine import build_engine, create_tables
from pdca_kernel.domain.clock import DeterministicClock
from pdca_kernel.domain.goal import (
    Actor,
    Goal,
    GoalStatus,
    GoalTask,
    PdcaPhase,
    TaskStatus,
    UserRole,
)
from pdca_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from pdca_kernel.services.assignee_tracker import AssigneeCompletionTracker
from pdca_kernel.services.goal_activity import GoalActivityService
from pdca_kernel.services.history_recorder import HistoryRecorder
from pdca_kernel.services.notifications import RecordingNotificationSink
from pdca_kernel.services.workflow_engine import WorkflowEngine
from pdca_kernel.stores.in_memory import InMemoryGoalRepository
from pdca_kernel.stores.sql_store import SqlGoalRepository

QUALITY = "Quality"
OPERATIONS = "Operations"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture pdca_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine):
            engine.request_transition(...)
            logs = captured_logs()
            assert any(r["message"] == "workflow_transition_committed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("pdca_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock and stores
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def memory_repo():
    return InMemoryGoalRepository()


@pytest.fixture
def sqlite_engine():
    """Fresh in-memory SQLite database with every goal table created."""
    engine = build_engine("sqlite://")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sqlite_engine):
    return sessionmaker(bind=sqlite_engine, expire_on_commit=False)


@pytest.fixture
def sql_repo(session_factory):
    return SqlGoalRepository(session_factory)


@pytest.fixture(params=["memory", "sql"])
def repo(request):
    """Every service test runs against both store adapters."""
    if request.param == "memory":
        return request.getfixturevalue("memory_repo")
    return request.getfixturevalue("sql_repo")


# =============================================================================
# Actors
# =============================================================================


@pytest.fixture
def make_actor():
    """Factory: make_actor(UserRole.HEAD, department="Quality", name="Dana")."""

    def _make(
        role: UserRole = UserRole.EMPLOYEE,
        department: str | None = QUALITY,
        name: str | None = None,
        user_id: UUID | None = None,
    ) -> Actor:
        return Actor(
            user_id=user_id or uuid4(),
            role=role,
            name=name or f"{role.value} user",
            department=department,
        )

    return _make


@pytest.fixture
def admin(make_actor):
    return make_actor(UserRole.ADMIN, department=None, name="Ada Admin")


@pytest.fixture
def head(make_actor):
    """Head of Quality; the owner of goals made by ``goal_factory``."""
    return make_actor(UserRole.HEAD, name="Hana Head")


@pytest.fixture
def employee(make_actor):
    return make_actor(UserRole.EMPLOYEE, name="Emil Employee")


@pytest.fixture
def outsider(make_actor):
    """Employee of another department with no grants and no assignment."""
    return make_actor(UserRole.EMPLOYEE, department=OPERATIONS, name="Otto Outsider")


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def notifier():
    return RecordingNotificationSink()


@pytest.fixture
def recorder(clock):
    return HistoryRecorder(clock)


@pytest.fixture
def engine(repo, notifier, clock, recorder):
    return WorkflowEngine(
        repo, repo, repo, repo, notifier=notifier, clock=clock, recorder=recorder
    )


@pytest.fixture
def tracker(repo, notifier, clock, recorder):
    return AssigneeCompletionTracker(
        repo, repo, repo, notifier=notifier, clock=clock, recorder=recorder
    )


@pytest.fixture
def activity(repo, notifier, clock, recorder):
    return GoalActivityService(
        repo, repo, repo, repo, notifier=notifier, clock=clock, recorder=recorder
    )


@pytest.fixture
def goal_factory(activity, head):
    """Create a goal through ``GoalActivityService`` and return the snapshot."""

    def _create(
        owner: Actor | None = None,
        subject: str = "Reduce scrap rate",
        department: str = QUALITY,
        assignee_ids: tuple[UUID, ...] = (),
        **kwargs,
    ) -> Goal:
        result = activity.create_goal(
            owner or head,
            subject,
            department,
            assignee_ids=assignee_ids,
            **kwargs,
        )
        assert result.ok, result.error
        return result.goal

    return _create


@pytest.fixture
def task_factory(repo):
    """Insert a task directly into the store (any status, no history)."""

    def _create(
        goal: Goal,
        phase: PdcaPhase,
        title: str = "Collect baseline data",
        status: TaskStatus = TaskStatus.PENDING,
        assigned_to: UUID | None = None,
        assignee_name: str | None = None,
    ) -> GoalTask:
        return repo.add_task(
            GoalTask(
                task_id=uuid4(),
                goal_id=goal.goal_id,
                title=title,
                pdca_phase=phase,
                status=status,
                assigned_to=assigned_to,
                assignee_name=assignee_name,
            )
        )

    return _create


@pytest.fixture
def advance_to(engine, head, repo):
    """Walk a gate-free goal forward to ``status`` as its owner."""
    path = [GoalStatus.DO, GoalStatus.CHECK, GoalStatus.ACT, GoalStatus.COMPLETED]

    def _advance(goal: Goal, status: GoalStatus, actor: Actor | None = None) -> Goal:
        current = goal
        for step in path:
            if current.status == status:
                break
            result = engine.request_transition(current.goal_id, step, actor or head)
            assert result.ok, result.error
            current = result.goal
        return current

    return _advance
