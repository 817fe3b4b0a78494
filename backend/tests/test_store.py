"""
Unit tests for telemetry persistence and windowed queries.
"""

from datetime import timedelta

import pytest

from collector.core.errors import PersistenceError
from collector.models import AgentSession, Command, LLMRequest, Process
from collector.models.base import utcnow
from collector.services import store
from collector.services.cost import calculate_cost


class TestWrites:
    """Test insert semantics."""

    def test_create_session_is_active(self, db_session):
        session = store.create_session(db_session, "s1", "executor", "kimi-k2")
        assert session.status == "active"
        assert session.started_at is not None
        assert session.ended_at is None

    def test_duplicate_session_id_fails(self, db_session):
        store.create_session(db_session, "s1", "executor", "kimi-k2")
        with pytest.raises(PersistenceError):
            store.create_session(db_session, "s1", "other", "gpt-4")

        # Original row untouched
        assert db_session.query(AgentSession).count() == 1
        assert db_session.get(AgentSession, "s1").agent_id == "executor"

    def test_command_for_unknown_session_is_accepted(self, db_session):
        command = store.record_command(db_session, "never-started", "bash", 12, False, "boom")
        assert command.id is not None
        assert command.error == "boom"

    def test_empty_error_stored_as_null(self, db_session):
        command = store.record_command(db_session, "s1", "bash", 12, True, "")
        assert command.error is None

    def test_commands_are_not_deduplicated(self, db_session):
        store.record_command(db_session, "s1", "bash", 1, True)
        store.record_command(db_session, "s1", "bash", 1, True)
        assert db_session.query(Command).count() == 2

    @pytest.mark.parametrize("model,input_tokens,output_tokens", [
        ("kimi-k2", 1024, 512),
        ("gpt-4", 0, 0),
        ("claude-3-opus", 12345, 678),
        ("not-in-the-table", 300, 700),
    ])
    def test_llm_request_totals_and_cost(self, db_session, model, input_tokens, output_tokens):
        row = store.record_llm_request(db_session, "s1", model, "test", input_tokens, output_tokens)
        assert row.total_tokens == input_tokens + output_tokens
        assert row.cost_usd == pytest.approx(calculate_cost(model, input_tokens, output_tokens))

    def test_process_start_and_end(self, db_session):
        store.start_process(db_session, "s1", "42", "python worker.py")
        closed = store.end_process(db_session, "42")

        assert closed.status == "completed"
        assert closed.ended_at is not None

    def test_end_unknown_pid_is_noop(self, db_session):
        store.start_process(db_session, "s1", "42")
        assert store.end_process(db_session, "99") is None

        process = db_session.query(Process).one()
        assert process.status == "running"
        assert process.ended_at is None

    def test_end_matches_pid_across_sessions(self, db_session):
        store.start_process(db_session, "s1", "7")
        store.start_process(db_session, "s2", "7")

        closed = store.end_process(db_session, "7")

        # The most recent row wins regardless of session
        assert closed.session_id == "s2"
        statuses = {p.session_id: p.status for p in db_session.query(Process).all()}
        assert statuses == {"s1": "running", "s2": "completed"}

    def test_record_thinking_serializes_payload(self, db_session):
        event = store.record_thinking(db_session, "s1", "check the docs", 3)
        assert event.event_type == "thinking"
        assert '"thought": "check the docs"' in event.data


class TestSummary:
    """Test the 24h summary."""

    def test_scenario_totals(self, db_session):
        store.create_session(db_session, "s1", "executor", "kimi-k2")
        store.record_command(db_session, "s1", "web_search", 1500, True)
        store.record_llm_request(db_session, "s1", "kimi-k2", "moonshot", 1024, 512)

        summary = store.get_summary(db_session)

        assert summary["total_sessions"] >= 1
        assert summary["active_sessions"] >= 1
        assert summary["total_commands"] >= 1
        assert summary["total_input_tokens"] == 1024
        assert summary["total_output_tokens"] == 512
        assert summary["total_cost"] >= calculate_cost("kimi-k2", 1024, 512) - 1e-12

    def test_empty_store(self, db_session):
        assert store.get_summary(db_session) == {
            "total_sessions": 0,
            "active_sessions": 0,
            "total_commands": 0,
            "total_input_tokens": 0,
            "total_output_tokens": 0,
            "total_cost": 0.0,
        }

    def test_window_filters_on_session_start(self, db_session):
        old = AgentSession(id="old", agent_id="a", model="m", status="active",
                           started_at=utcnow() - timedelta(hours=48))
        db_session.add(old)
        db_session.commit()
        # Recent activity attached to an old session
        store.record_command(db_session, "old", "bash", 10, True)
        store.record_llm_request(db_session, "old", "gpt-4", "openai", 100, 100)

        summary = store.get_summary(db_session)

        assert summary["total_sessions"] == 0
        assert summary["total_commands"] == 0
        assert summary["total_cost"] == 0.0
        # Active count ignores the window
        assert summary["active_sessions"] == 1

    def test_orphan_rows_not_counted(self, db_session):
        store.record_command(db_session, "ghost", "bash", 10, True)
        assert store.get_summary(db_session)["total_commands"] == 0

    def test_multiple_commands_and_requests_not_multiplied(self, db_session):
        store.create_session(db_session, "s1", "executor", "kimi-k2")
        for _ in range(3):
            store.record_command(db_session, "s1", "bash", 10, True)
        for _ in range(2):
            store.record_llm_request(db_session, "s1", "kimi-k2", "moonshot", 100, 50)

        summary = store.get_summary(db_session)

        assert summary["total_commands"] == 3
        assert summary["total_input_tokens"] == 200
        assert summary["total_output_tokens"] == 100


class TestRecentActivity:
    """Test the interleaved activity feed."""

    def _seed(self, db_session):
        now = utcnow()
        for i in range(4):
            db_session.add(Command(session_id="s1", tool_name=f"tool-{i}", duration_ms=i,
                                   success=True, timestamp=now - timedelta(minutes=2 * i)))
            db_session.add(LLMRequest(session_id="s1", model="kimi-k2", provider="moonshot",
                                      input_tokens=10, output_tokens=i, total_tokens=10 + i,
                                      cost_usd=0.0, timestamp=now - timedelta(minutes=2 * i + 1)))
        db_session.commit()

    def test_limit_and_ordering(self, db_session):
        self._seed(db_session)

        rows = store.get_recent_activity(db_session, limit=5)

        assert len(rows) == 5
        timestamps = [row["timestamp"] for row in rows]
        assert timestamps == sorted(timestamps, reverse=True)
        assert [row["type"] for row in rows] == ["command", "llm", "command", "llm", "command"]

    def test_row_projection(self, db_session):
        self._seed(db_session)

        command, llm = store.get_recent_activity(db_session, limit=2)

        assert command == {
            "type": "command",
            "name": "tool-0",
            "timestamp": command["timestamp"],
            "session_id": "s1",
            "duration_ms": 0,
            "success": True,
        }
        assert llm["name"] == "kimi-k2"
        assert llm["duration_ms"] == 10
        assert llm["success"] is None

    def test_limit_larger_than_rows(self, db_session):
        self._seed(db_session)
        assert len(store.get_recent_activity(db_session, limit=50)) == 8


class TestCostBreakdown:
    """Test the 7-day per-model cost table."""

    def test_grouped_by_date_and_model(self, db_session):
        now = utcnow()
        db_session.add_all([
            LLMRequest(session_id="s1", model="kimi-k2", input_tokens=100, output_tokens=100,
                       total_tokens=200, cost_usd=0.1, timestamp=now),
            LLMRequest(session_id="s1", model="kimi-k2", input_tokens=50, output_tokens=50,
                       total_tokens=100, cost_usd=0.05, timestamp=now),
            LLMRequest(session_id="s1", model="gpt-4", input_tokens=10, output_tokens=10,
                       total_tokens=20, cost_usd=1.0, timestamp=now - timedelta(days=3)),
            LLMRequest(session_id="s1", model="gpt-4", input_tokens=10, output_tokens=10,
                       total_tokens=20, cost_usd=9.0, timestamp=now - timedelta(days=10)),
        ])
        db_session.commit()

        rows = store.get_cost_breakdown(db_session)

        assert len(rows) == 2
        latest, earlier = rows
        assert latest["date"] == now.date().isoformat()
        assert latest["model"] == "kimi-k2"
        assert latest["request_count"] == 2
        assert latest["input_tokens"] == 150
        assert latest["cost"] == pytest.approx(0.15)
        assert earlier["model"] == "gpt-4"
        assert earlier["date"] < latest["date"]


class TestThinkingLog:
    """Test the reasoning log query."""

    def test_payload_round_trips_newest_first(self, db_session):
        for step in range(1, 4):
            store.record_thinking(db_session, "s1", f"thought {step}", step)

        entries = store.get_thinking_log(db_session, limit=2)

        assert len(entries) == 2
        assert entries[0]["data"] == {"thought": "thought 3", "step": 3}
        assert entries[1]["data"]["step"] == 2
        assert entries[0]["event_type"] == "thinking"
