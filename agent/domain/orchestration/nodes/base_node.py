import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from langchain_core.messages import AIMessage

from domain.models.agent_state import GraphPhase, NodeExecutionContext, RunState
from domain.orchestration.core.errors import IterationLimitExceeded, RunCancelled
from infrastructure.observability.logging import agent_logger
from infrastructure.observability.observability_manager import ObservabilityManager


class BaseNode(ABC):
    """Execution template shared by every graph node.

    ``execute`` wraps the node-specific ``execute_core`` with phase
    timing, cancellation and budget checks, and the error policy. It
    never raises: failures come back as a state patch.

    Subclasses set ``phase`` and implement ``execute_core``, which
    returns a partial state and lets exceptions propagate.
    """

    phase: GraphPhase
    description: str = ""
    # Failure of this node ends the run instead of going to recovery
    failure_is_fatal: bool = False

    def __init__(self, observability: ObservabilityManager):
        self.observability = observability
        self.created_at = datetime.now(timezone.utc)
        self.last_active = self.created_at

    @property
    def name(self) -> str:
        return self.phase.value

    @abstractmethod
    async def execute_core(self, state: RunState, context: NodeExecutionContext) -> Dict[str, Any]:
        """Node-specific logic; returns the fields to change"""
        pass

    async def execute(self, state: RunState, cancel_event: Optional[asyncio.Event] = None) -> Dict[str, Any]:
        self.update_activity()
        self.observability.log_phase_start(self.phase, state)

        try:
            self.check_budgets(state, cancel_event)
            context = NodeExecutionContext(
                timestamp=time.time() * 1000,
                phase=self.phase,
                chat_id=state["chat_id"],
                iteration=state.get("iteration", 0),
            )
            result = await self.execute_core(state, context)
        except asyncio.CancelledError:
            self.observability.abandon_phase(self.phase, state)
            raise
        except Exception as e:
            result = self.handle_error(e, state)

        self.observability.log_phase_complete(self.phase, state, result)

        node_iterations = dict(state.get("node_iterations") or {})
        node_iterations[self.name] = node_iterations.get(self.name, 0) + 1

        return {
            **result,
            "current_phase": self.phase,
            "node_iterations": node_iterations,
        }

    def check_budgets(self, state: RunState, cancel_event: Optional[asyncio.Event] = None):
        """Raise before any work when the run is cancelled or out of budget"""

        if cancel_event is not None and cancel_event.is_set():
            raise RunCancelled(state["chat_id"])

        max_graph_iterations = state.get("max_graph_iterations")
        if max_graph_iterations is not None and state.get("iteration", 0) >= max_graph_iterations:
            raise IterationLimitExceeded(max_graph_iterations)

        limit = (state.get("max_node_iterations") or {}).get(self.name)
        if limit is not None and (state.get("node_iterations") or {}).get(self.name, 0) >= limit:
            raise IterationLimitExceeded(limit, self.name)

    def handle_error(self, error: Exception, state: RunState) -> Dict[str, Any]:
        """Turn a failure into a patch: fatal ends the run, anything else goes to recovery"""

        message = str(error) or type(error).__name__
        fatal = getattr(error, "fatal", False) or self.failure_is_fatal

        agent_logger.log_agent_event(
            "node_failed",
            phase=self.name,
            chat_id=state.get("chat_id"),
            data={"error_type": type(error).__name__, "fatal": fatal},
            error=message,
        )
        self.observability.track_error(self.name, error, state)

        if not fatal:
            return {"error": message}

        return {
            "error": message,
            "is_completed": True,
            "messages": [AIMessage(content=f"Run stopped: {message}", name=self.name)],
        }

    def update_activity(self):
        """Update last activity timestamp"""
        self.last_active = datetime.now(timezone.utc)

    def get_info(self) -> Dict[str, Any]:
        """Get node information"""
        return {
            "name": self.name,
            "description": self.description,
            "failure_is_fatal": self.failure_is_fatal,
            "created_at": self.created_at.isoformat(),
            "last_active": self.last_active.isoformat(),
        }
