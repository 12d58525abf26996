from typing import Dict, Any

from langchain_core.messages import AIMessage

from domain.context.context_builder import ContextBuilder, append_working_memory
from domain.models.agent_state import EngineConfig, GraphPhase, NodeExecutionContext, RunState
from domain.orchestration.nodes.base_node import BaseNode


class ValidationNode(BaseNode):
    """Reviews a failed tool step; an invalid verdict is promoted to ``error``"""

    phase = GraphPhase.VALIDATION
    description = "Validation of failed tool steps"

    def __init__(self, observability, validation_service, context_builder: ContextBuilder, config: EngineConfig):
        super().__init__(observability)
        self.validation_service = validation_service
        self.context_builder = context_builder
        self.config = config

    async def execute_core(self, state: RunState, context: NodeExecutionContext) -> Dict[str, Any]:
        decision = await self.validation_service.decide(self.context_builder.for_validation(state))

        verdict = "valid" if decision.is_valid else "invalid"
        patch: Dict[str, Any] = {
            "messages": [AIMessage(
                content=f"Validation Thought: {verdict}. {decision.reasoning}",
                name=self.name,
            )],
            "requires_validation": False,
        }
        if decision.is_valid:
            return patch

        failed_task = ContextBuilder.failed_task(state)
        feedback = decision.correction_suggestion or decision.reasoning
        patch["working_memory"] = append_working_memory(
            state.get("working_memory") or "",
            f"Validation Feedback: {feedback}",
            self.config.max_working_memory_chars,
        )
        patch["error"] = f"Validation failed: {decision.reasoning}"
        patch["debug_info"] = {
            **(state.get("debug_info") or {}),
            "failed_task": failed_task,
        }

        if decision.updated_plan:
            patch["current_plan"] = list(decision.updated_plan)
            patch["current_task"] = decision.updated_plan[0]
        else:
            patch["current_task"] = failed_task

        return patch
