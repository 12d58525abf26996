from typing import Dict, Any

from langchain_core.messages import AIMessage

from domain.context.context_builder import ContextBuilder
from domain.models.agent_state import GraphPhase, NodeExecutionContext, PendingToolCall, RunState
from domain.orchestration.core.errors import PreconditionViolation
from domain.orchestration.nodes.base_node import BaseNode


class ExecutorNode(BaseNode):
    """Turns the current task into one concrete tool call"""

    phase = GraphPhase.EXECUTOR
    description = "Tool selection for the current task"

    def __init__(self, observability, executor_service, context_builder: ContextBuilder):
        super().__init__(observability)
        self.executor_service = executor_service
        self.context_builder = context_builder

    async def execute_core(self, state: RunState, context: NodeExecutionContext) -> Dict[str, Any]:
        task = state.get("current_task")
        if not task:
            raise PreconditionViolation(self.name, "no current task to execute")

        decision = await self.executor_service.decide(self.context_builder.for_executor(state))

        pending = PendingToolCall(tool=decision.tool, parameters=decision.parameters, task=task)

        return {
            "messages": [AIMessage(content=f"Executor Thought: {decision.thought}", name=self.name)],
            "current_task": None,
            "debug_info": {
                **(state.get("debug_info") or {}),
                "pending_tool_call": pending.model_dump(),
            },
        }
