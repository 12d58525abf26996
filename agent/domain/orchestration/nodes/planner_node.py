from typing import Dict, Any, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, ToolMessage

from domain.context.context_builder import ContextBuilder, append_working_memory
from domain.models.agent_state import EngineConfig, GraphPhase, NodeExecutionContext, RunState
from domain.orchestration.core.errors import TaskRetriesExhausted
from domain.orchestration.nodes.base_node import BaseNode

_HANDLED_BY = (GraphPhase.PLANNER.value, GraphPhase.ERROR_HANDLER.value)


def latest_tool_result(messages: Sequence[BaseMessage]) -> Optional[ToolMessage]:
    """Newest tool result that neither the planner nor recovery has handled.

    Executor and validation messages may follow the tool result; the
    search stops at the previous planner or recovery output.
    """

    for message in reversed(messages):
        if isinstance(message, ToolMessage):
            return message
        if isinstance(message, AIMessage) and message.name in _HANDLED_BY:
            return None
    return None


def last_failed_task(state: RunState) -> Optional[str]:
    """Task of the newest unseen tool result when that result is a failure"""

    result = latest_tool_result(state.get("messages") or [])
    if result is None or getattr(result, "status", "success") != "error":
        return None
    executions = state.get("tools_used") or []
    return executions[-1].get("task") if executions else None


class PlannerNode(BaseNode):
    """Maintains the plan and picks the next task, or declares the request answered"""

    phase = GraphPhase.PLANNER
    description = "Plan maintenance and task selection"

    def __init__(self, observability, planner_service, context_builder: ContextBuilder, config: EngineConfig):
        super().__init__(observability)
        self.planner_service = planner_service
        self.context_builder = context_builder
        self.config = config

    async def execute_core(self, state: RunState, context: NodeExecutionContext) -> Dict[str, Any]:
        result = latest_tool_result(state.get("messages") or [])
        tool_failed = result is not None and getattr(result, "status", "success") == "error"
        failed_task = last_failed_task(state)

        retry_count = (state.get("current_task_retry_count") or 0) + 1 if tool_failed else 0

        if retry_count >= self.config.max_task_retries:
            raise TaskRetriesExhausted(failed_task, retry_count)

        decision = await self.planner_service.decide(self.context_builder.for_planner(state))

        patch: Dict[str, Any] = {
            "messages": [AIMessage(content=f"Planner Thought: {decision.thought}", name=self.name)],
            "working_memory": append_working_memory(
                state.get("working_memory") or "",
                f"Planner: {decision.thought}",
                self.config.max_working_memory_chars,
            ),
        }

        if decision.is_plan_complete:
            if decision.final_answer:
                patch["messages"].append(AIMessage(content=decision.final_answer, name=self.name))
            patch.update({
                "current_plan": [],
                "current_task": None,
                "is_completed": True,
                "final_output": decision.final_answer or decision.thought,
                "current_task_retry_count": 0,
            })
            return patch

        patch.update({
            "current_plan": list(decision.plan),
            "current_task": decision.next_task,
            "current_task_retry_count": retry_count if decision.next_task == failed_task else 0,
        })
        return patch
