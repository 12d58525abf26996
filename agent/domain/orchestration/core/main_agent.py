import asyncio
from typing import Dict, Any, AsyncIterator, Optional

import structlog
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage

from domain.context.context_builder import ContextBuilder
from domain.context.state.state_factory import StateFactory
from domain.decision.decision_services import (
    PlannerService,
    ExecutorService,
    ErrorCorrectionService,
    ValidationService,
)
from domain.events.event_dispatcher import InternalEventDispatcher
from domain.models.agent_state import EngineConfig, GraphPhase, RunState
from domain.orchestration.core.graph_runner import GraphRunner
from domain.orchestration.nodes.base_node import BaseNode
from domain.orchestration.nodes.error_handler_node import ErrorHandlerNode
from domain.orchestration.nodes.executor_node import ExecutorNode
from domain.orchestration.nodes.planner_node import PlannerNode
from domain.orchestration.nodes.tool_runner_node import ToolRunnerNode
from domain.orchestration.nodes.validation_node import ValidationNode
from domain.tool.tool_executor import ToolExecutor
from domain.tool.tool_registry import ToolRegistry
from infrastructure.config.settings import AgentSettings, get_settings
from infrastructure.observability.logging import setup_logging
from infrastructure.observability.observability_manager import ObservabilityManager
from infrastructure.observability.performance_monitor import PerformanceMonitor

logger = structlog.get_logger(__name__)

# State keys whose updates append instead of overwrite
_APPENDED_KEYS = ("messages", "tools_used", "tool_call_signatures")


def last_assistant_message(state: RunState) -> Optional[str]:
    for message in reversed(state.get("messages") or []):
        if isinstance(message, AIMessage):
            return str(message.content)
    return None


class AgentOrchestrator:
    """Main agent orchestrator using LangGraph.

    Wires decision services, nodes, observability and the graph runner
    from injected collaborators. Decision services default to
    model-backed ones built on ``model``; pass them explicitly to run
    without a chat model.
    """

    def __init__(
        self,
        model: Optional[BaseChatModel] = None,
        tool_registry: Optional[ToolRegistry] = None,
        dispatcher: Optional[InternalEventDispatcher] = None,
        performance_monitor: Optional[PerformanceMonitor] = None,
        config: Optional[EngineConfig] = None,
        enable_validation: bool = True,
        planner_service=None,
        executor_service=None,
        correction_service=None,
        validation_service=None,
    ):
        self.config = config or EngineConfig()
        self.dispatcher = dispatcher or InternalEventDispatcher()
        self.performance_monitor = performance_monitor or PerformanceMonitor()
        self.tool_registry = tool_registry or ToolRegistry(
            dispatcher=self.dispatcher,
            executor=ToolExecutor(default_timeout=self.config.tool_timeout_seconds),
        )
        self.observability = ObservabilityManager(self.dispatcher, self.performance_monitor)
        self.context_builder = ContextBuilder(self.tool_registry)

        repairs = self.config.max_repair_attempts
        self.planner_service = planner_service or self._require_model(model, "planner", PlannerService, repairs)
        self.executor_service = executor_service or self._require_model(model, "executor", ExecutorService, repairs)
        self.correction_service = correction_service or self._require_model(
            model, "error correction", ErrorCorrectionService, repairs
        )
        self.validation_service = validation_service
        if self.validation_service is None and enable_validation and model is not None:
            self.validation_service = ValidationService(model, repairs)

        self.nodes = self._create_nodes()
        self.runner = GraphRunner(self.nodes, config=self.config)

    @classmethod
    def from_settings(
        cls,
        model: Optional[BaseChatModel] = None,
        tool_registry: Optional[ToolRegistry] = None,
        settings: Optional[AgentSettings] = None,
        **kwargs: Any,
    ) -> "AgentOrchestrator":
        """Configure logging and limits from the environment, then build the orchestrator"""

        settings = settings or get_settings()
        setup_logging(settings.log_level, settings.log_format, settings.service_name)
        return cls(model=model, tool_registry=tool_registry, config=settings.to_engine_config(), **kwargs)

    @staticmethod
    def _require_model(model, label: str, service_class, max_repair_attempts: int):
        if model is None:
            raise ValueError(f"A chat model or an explicit {label} service is required")
        return service_class(model, max_repair_attempts)

    def _create_nodes(self) -> Dict[GraphPhase, BaseNode]:
        """Create one node per phase; validation only with a validation service"""

        validate = self.validation_service is not None
        nodes: Dict[GraphPhase, BaseNode] = {
            GraphPhase.PLANNER: PlannerNode(
                self.observability, self.planner_service, self.context_builder, self.config
            ),
            GraphPhase.EXECUTOR: ExecutorNode(
                self.observability, self.executor_service, self.context_builder
            ),
            GraphPhase.TOOL_RUNNER: ToolRunnerNode(
                self.observability, self.tool_registry, self.config, validate_failures=validate
            ),
            GraphPhase.ERROR_HANDLER: ErrorHandlerNode(
                self.observability, self.correction_service, self.context_builder
            ),
        }
        if validate:
            nodes[GraphPhase.VALIDATION] = ValidationNode(
                self.observability, self.validation_service, self.context_builder, self.config
            )
        return nodes

    async def run(
        self,
        user_input: str,
        chat_id: str,
        retrieved_memory: str = "",
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RunState:
        """Run one turn to completion. Never raises; failures end in an error state."""

        self.observability.log_engine_start(chat_id)
        state = StateFactory.create_initial_state(user_input, chat_id, self.config, retrieved_memory)

        with structlog.contextvars.bound_contextvars(chat_id=chat_id):
            logger.info("Processing message", input_length=len(user_input))
            try:
                final_state = await self.runner.run(state, cancel_event)
            except Exception as e:
                logger.error("Graph run failed", error=str(e), error_type=type(e).__name__)
                self.observability.track_error("runner", e, state)
                final_state = {
                    **state,
                    "error": str(e) or type(e).__name__,
                    "is_completed": True,
                    "current_phase": GraphPhase.ERROR,
                }

        final_state = self._finalize(final_state)
        self.observability.log_engine_end(chat_id, final_state)
        return final_state

    async def process_message(
        self,
        user_input: str,
        chat_id: str,
        retrieved_memory: str = "",
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """Process a message through the workflow, yielding each step's update"""

        self.observability.log_engine_start(chat_id)
        state = StateFactory.create_initial_state(user_input, chat_id, self.config, retrieved_memory)
        final_state: Dict[str, Any] = dict(state)

        with structlog.contextvars.bound_contextvars(chat_id=chat_id):
            try:
                async for update in self.runner.stream(state, cancel_event):
                    for phase, patch in update.items():
                        for key, value in (patch or {}).items():
                            if key in _APPENDED_KEYS:
                                final_state[key] = list(final_state.get(key) or []) + list(value or [])
                            else:
                                final_state[key] = value
                        yield {"phase": phase, "update": patch}
            except Exception as e:
                logger.error("Graph stream failed", error=str(e), error_type=type(e).__name__)
                self.observability.track_error("runner", e, state)
                failure = {
                    "error": str(e) or type(e).__name__,
                    "is_completed": True,
                    "current_phase": GraphPhase.ERROR,
                }
                final_state.update(failure)
                yield {"phase": GraphPhase.ERROR.value, "update": failure}

        final_state = self._finalize(final_state)
        self.observability.log_engine_end(chat_id, final_state)

    @staticmethod
    def _finalize(state: Dict[str, Any]) -> RunState:
        if not state.get("final_output"):
            state = {**state, "final_output": last_assistant_message(state) or state.get("error")}
        return state

    def get_metrics(self) -> Dict[str, Any]:
        return self.performance_monitor.get_metrics_summary()

    def dispose(self):
        self.observability.dispose()
        self.tool_registry.executor.shutdown()
