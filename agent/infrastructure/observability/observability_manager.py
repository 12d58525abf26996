import time
from typing import Dict, Any, Mapping, Optional
import structlog

from domain.events.event_dispatcher import InternalEventDispatcher
from domain.events.events import EventType, AgentPhaseEventPayload, SystemEventPayload
from domain.models.agent_state import GraphPhase
from infrastructure.observability.performance_monitor import PerformanceMonitor

logger = structlog.get_logger(__name__)


def _phase_name(phase: Any) -> str:
    return phase.value if isinstance(phase, GraphPhase) else str(phase)


class ObservabilityManager:
    """Phase timing and lifecycle/error events for graph runs.

    Side-effect only: nothing here feeds back into control flow. Timer
    keys are namespaced ``chat_id:phase:iteration`` so concurrent runs
    never collide. The dispatcher and monitor are owned by the caller.
    """

    def __init__(self, dispatcher: InternalEventDispatcher, performance_monitor: PerformanceMonitor):
        self.dispatcher = dispatcher
        self.performance_monitor = performance_monitor
        self._timers: Dict[str, float] = {}

    @staticmethod
    def _timer_id(phase: Any, state: Mapping[str, Any]) -> str:
        return f"{state.get('chat_id', '')}:{_phase_name(phase)}:{state.get('iteration', 0)}"

    def log_phase_start(self, phase: GraphPhase, state: Mapping[str, Any]):
        name = _phase_name(phase)
        self._timers[self._timer_id(phase, state)] = time.monotonic()

        self.dispatcher.publish(EventType.AGENT_PHASE_STARTED, AgentPhaseEventPayload(
            phase=name,
            chat_id=state.get("chat_id"),
            iteration=state.get("iteration", 0),
            source=f"GraphRunner.{name}",
        ))
        logger.debug("Phase started", phase=name, chat_id=state.get("chat_id"),
                     iteration=state.get("iteration", 0))

    def log_phase_complete(self, phase: GraphPhase, state: Mapping[str, Any], result: Mapping[str, Any]):
        name = _phase_name(phase)
        started = self._timers.pop(self._timer_id(phase, state), None)
        duration_ms = (time.monotonic() - started) * 1000 if started is not None else 0.0

        error = result.get("error")
        self.performance_monitor.record_duration(name, duration_ms, errored=bool(error), error=error)

        self.dispatcher.publish(EventType.AGENT_PHASE_COMPLETED, AgentPhaseEventPayload(
            phase=name,
            chat_id=state.get("chat_id"),
            iteration=state.get("iteration", 0),
            duration_ms=duration_ms,
            error=error,
            source=f"GraphRunner.{name}",
            data={
                "is_completed": result.get("is_completed"),
                "requires_validation": result.get("requires_validation"),
            },
        ))
        logger.info("Phase completed", phase=name, chat_id=state.get("chat_id"),
                    duration_ms=round(duration_ms, 2), error=error)

    def abandon_phase(self, phase: GraphPhase, state: Mapping[str, Any]):
        """Drop the timer of a phase that was cancelled before completing"""
        self._timers.pop(self._timer_id(phase, state), None)
        logger.info("Phase cancelled", phase=_phase_name(phase), chat_id=state.get("chat_id"))

    def track_error(self, source: str, error: BaseException, state: Mapping[str, Any]):
        self.dispatcher.publish(EventType.SYSTEM_ERROR, SystemEventPayload(
            level="error",
            message=str(error),
            source=f"GraphRunner.{source}",
            chat_id=state.get("chat_id"),
            details={
                "error_type": type(error).__name__,
                "phase": _phase_name(state.get("current_phase")),
                "iteration": state.get("iteration", 0),
            },
        ))
        logger.error("Phase error", source=source, chat_id=state.get("chat_id"),
                     error_type=type(error).__name__, error=str(error))

    def log_engine_start(self, chat_id: str):
        self.dispatcher.system_info("Graph run started", {"chat_id": chat_id},
                                    source="AgentOrchestrator", chat_id=chat_id)

    def log_engine_end(self, chat_id: str, final_state: Mapping[str, Any]):
        start_time: Optional[float] = final_state.get("start_time")
        duration_ms = time.time() * 1000 - start_time if start_time else 0.0
        self.dispatcher.system_info("Graph run finished", {
            "chat_id": chat_id,
            "status": "failed" if final_state.get("error") else "completed",
            "duration_ms": duration_ms,
            "total_iterations": final_state.get("iteration", 0),
        }, source="AgentOrchestrator", chat_id=chat_id)

    def active_timers(self) -> int:
        return len(self._timers)

    def dispose(self):
        self._timers.clear()
