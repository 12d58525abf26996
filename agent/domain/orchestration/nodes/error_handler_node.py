from typing import Dict, Any

from langchain_core.messages import AIMessage

from domain.context.context_builder import ContextBuilder
from domain.models.agent_state import GraphPhase, NodeExecutionContext, RunState
from domain.orchestration.nodes.base_node import BaseNode


class ErrorHandlerNode(BaseNode):
    """Applies a recovery strategy and retires ``error``.

    Every branch clears ``error``. If the correction service itself
    fails the run ends: there is nothing left to recover with.
    """

    phase = GraphPhase.ERROR_HANDLER
    description = "Error recovery"
    failure_is_fatal = True

    def __init__(self, observability, correction_service, context_builder: ContextBuilder):
        super().__init__(observability)
        self.correction_service = correction_service
        self.context_builder = context_builder

    async def execute_core(self, state: RunState, context: NodeExecutionContext) -> Dict[str, Any]:
        decision = await self.correction_service.decide(self.context_builder.for_error(state))

        patch: Dict[str, Any] = {
            "messages": [AIMessage(
                content=f"Recovery ({decision.decision}): {decision.thought}",
                name=self.name,
            )],
            "error": None,
        }
        debug_info = state.get("debug_info") or {}
        if "failed_task" in debug_info:
            patch["debug_info"] = {k: v for k, v in debug_info.items() if k != "failed_task"}

        if decision.decision == "modify_plan":
            patch["current_plan"] = list(decision.new_plan)
            patch["current_task"] = None
        elif decision.decision == "continue":
            failed_task = ContextBuilder.failed_task(state)
            patch["current_plan"] = [
                task for task in (state.get("current_plan") or []) if task != failed_task
            ]
            patch["current_task"] = None

        return patch
