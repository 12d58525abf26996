import asyncio

import pytest
import structlog

from domain.events.event_dispatcher import InternalEventDispatcher
from domain.events.events import EventType, SystemEventPayload
from domain.models.agent_state import GraphPhase
from infrastructure.observability.logging import add_service_context
from infrastructure.observability.performance_monitor import MAX_DURATION_SAMPLES, PerformanceMonitor


class TestDispatcher:
    def test_sync_subscriber_receives_dumped_payload(self, dispatcher):
        received = []
        dispatcher.subscribe(EventType.SYSTEM_INFO, lambda event_type, data: received.append(data))

        dispatcher.publish(EventType.SYSTEM_INFO, SystemEventPayload(message="hello", chat_id="c1"))

        assert received[0]["message"] == "hello"
        assert received[0]["level"] == "info"
        assert received[0]["timestamp"] > 0

    def test_failing_subscriber_is_isolated(self, dispatcher):
        received = []

        def broken(event_type, data):
            raise RuntimeError("subscriber bug")

        dispatcher.subscribe(EventType.SYSTEM_WARNING, broken)
        dispatcher.subscribe(EventType.SYSTEM_WARNING, lambda event_type, data: received.append(data))

        dispatcher.system_warning("careful", {"k": 1}, source="test")

        assert received[0]["details"] == {"k": 1}

    def test_unsubscribe(self, dispatcher):
        received = []
        handler = lambda event_type, data: received.append(data)  # noqa: E731
        dispatcher.subscribe(EventType.SYSTEM_ERROR, handler)
        dispatcher.unsubscribe(EventType.SYSTEM_ERROR, handler)

        dispatcher.system_error("gone")

        assert received == []

    @pytest.mark.asyncio
    async def test_async_subscriber(self, dispatcher):
        received = []

        async def handler(event_type, data):
            await asyncio.sleep(0)
            received.append(event_type)

        async def broken(event_type, data):
            raise RuntimeError("async subscriber bug")

        dispatcher.subscribe(EventType.AGENT_PHASE_STARTED, handler)
        dispatcher.subscribe(EventType.AGENT_PHASE_STARTED, broken)

        dispatcher.publish(EventType.AGENT_PHASE_STARTED, {"phase": "planner"})
        await dispatcher.drain()

        assert received == [EventType.AGENT_PHASE_STARTED]

    def test_async_subscriber_without_loop_is_dropped(self):
        dispatcher = InternalEventDispatcher()

        async def handler(event_type, data):
            pass

        dispatcher.subscribe(EventType.SYSTEM_INFO, handler)
        dispatcher.system_info("no loop here")


class TestPerformanceMonitor:
    def test_aggregates(self):
        monitor = PerformanceMonitor()
        monitor.record_duration("planner", 10.0)
        monitor.record_duration("planner", 30.0, errored=True, error="boom")

        perf = monitor.get_node_metrics("planner")

        assert perf.call_count == 2
        assert perf.average_duration == 20.0
        assert perf.min_duration == 10.0
        assert perf.max_duration == 30.0
        assert perf.error_count == 1
        assert perf.error_rate == 0.5
        assert perf.last_error == "boom"

    def test_sample_window(self):
        monitor = PerformanceMonitor()
        for _ in range(MAX_DURATION_SAMPLES):
            monitor.record_duration("executor", 1000.0)
        for _ in range(MAX_DURATION_SAMPLES):
            monitor.record_duration("executor", 1.0)

        perf = monitor.get_node_metrics("executor")

        assert perf.average_duration == 1.0
        assert perf.call_count == 2 * MAX_DURATION_SAMPLES

    def test_reports(self):
        monitor = PerformanceMonitor()
        monitor.record_duration("tool:list_files", 5.0)
        monitor.record_duration("tool:read_file", 50.0)
        monitor.record_duration("planner", 20.0)

        assert [p.node_name for p in monitor.get_report()] == ["tool:read_file", "planner", "tool:list_files"]

        grouped = monitor.get_grouped_report()
        assert [p.node_name for p in grouped["tool"]] == ["tool:read_file", "tool:list_files"]
        assert [p.node_name for p in grouped["general"]] == ["planner"]

        monitor.reset()
        assert monitor.get_report() == []
        assert monitor.get_node_metrics("planner") is None


class TestObservabilityManager:
    def test_timers_are_namespaced_by_run(self, observability, initial_state):
        other_run = {**initial_state, "chat_id": "chat-2"}

        observability.log_phase_start(GraphPhase.PLANNER, initial_state)
        observability.log_phase_start(GraphPhase.PLANNER, other_run)
        assert observability.active_timers() == 2

        observability.log_phase_complete(GraphPhase.PLANNER, initial_state, {})
        assert observability.active_timers() == 1

        observability.dispose()
        assert observability.active_timers() == 0

    def test_errored_phase_is_counted(self, observability, initial_state, performance_monitor):
        observability.log_phase_start(GraphPhase.EXECUTOR, initial_state)
        observability.log_phase_complete(GraphPhase.EXECUTOR, initial_state, {"error": "boom"})

        assert performance_monitor.get_node_metrics("executor").error_count == 1

    def test_engine_lifecycle_events(self, observability, initial_state, recorder):
        observability.log_engine_start("chat-1")
        observability.log_engine_end("chat-1", {**initial_state, "iteration": 4})

        infos = recorder.of_type(EventType.SYSTEM_INFO)
        assert infos[0]["message"] == "Graph run started"
        assert infos[1]["details"]["status"] == "completed"
        assert infos[1]["details"]["total_iterations"] == 4

    def test_track_error(self, observability, initial_state, recorder):
        observability.track_error("planner", ValueError("bad"), initial_state)

        error = recorder.of_type(EventType.SYSTEM_ERROR)[0]
        assert error["message"] == "bad"
        assert error["details"] == {"error_type": "ValueError", "phase": "planner", "iteration": 0}


def test_service_context_adds_bound_chat_id():
    with structlog.contextvars.bound_contextvars(chat_id="chat-5"):
        event = add_service_context(None, "info", {"event": "x"})

    assert event["chat_id"] == "chat-5"
    assert "timestamp" in event
