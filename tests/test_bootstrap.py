"""Composition root: build_kernel wires stores, sinks and services from config."""

import pytest

from pdca_config.loader import parse_config
from pdca_kernel.bootstrap import build_kernel
from pdca_kernel.db.engine import reset_engine
from pdca_kernel.domain.goal import GoalStatus
from pdca_kernel.services.notifications import RecordingNotificationSink
from pdca_kernel.stores.in_memory import InMemoryGoalRepository
from pdca_kernel.stores.sql_store import SqlGoalRepository


@pytest.fixture
def sql_kernel_config():
    yield parse_config({"database": {"url": "sqlite://"}})
    reset_engine()


class TestBuildKernel:
    def test_default_config_uses_memory_store(self, clock):
        kernel = build_kernel(parse_config({}), clock=clock)

        assert isinstance(kernel.repository, InMemoryGoalRepository)
        assert kernel.db_engine is None
        assert kernel.retry_policy.max_attempts == 3

    def test_services_share_repository_and_sinks(self, clock, head):
        sink = RecordingNotificationSink()
        kernel = build_kernel(parse_config({}), clock=clock, extra_sinks=(sink,))

        goal = kernel.activity.create_goal(head, "Wired", "Quality").goal
        moved = kernel.engine.request_transition(goal.goal_id, GoalStatus.DO, head)

        assert moved.ok
        assert kernel.repository.load_goal(goal.goal_id).status == GoalStatus.DO
        assert sink.actions() == ["status_change", "status_change"]

    def test_sql_store_with_created_tables(self, sql_kernel_config, clock, head):
        kernel = build_kernel(sql_kernel_config, clock=clock)

        assert isinstance(kernel.repository, SqlGoalRepository)
        assert kernel.db_engine is not None
        result = kernel.activity.create_goal(head, "Persisted", "Quality")
        assert kernel.repository.load_goal(result.goal.goal_id) == result.goal

    def test_logs_build_summary(self, clock, captured_logs):
        config = parse_config({"notifications": {"log_events": False}})
        build_kernel(config, clock=clock)

        record = next(r for r in captured_logs() if r["message"] == "kernel_built")
        assert record["store"] == "InMemoryGoalRepository"
        assert record["sink_count"] == 0
        assert record["config_checksum"] == config.checksum
