import json
import time
import uuid
from typing import Dict, Any

import structlog
from langchain_core.messages import ToolMessage

from domain.models.agent_state import (
    EngineConfig,
    GraphPhase,
    NodeExecutionContext,
    RunState,
    ToolExecution,
    get_pending_tool_call,
)
from domain.orchestration.core.errors import PreconditionViolation
from domain.orchestration.nodes.base_node import BaseNode
from domain.tool.tool_executor import ToolResult
from domain.tool.tool_registry import ToolRegistry

logger = structlog.get_logger(__name__)


def tool_call_signature(tool: str, parameters: Dict[str, Any], chat_id: str) -> str:
    """Canonical form of a call, stable under parameter ordering"""
    return json.dumps({"tool": tool, "parameters": parameters, "chat_id": chat_id},
                      sort_keys=True, default=str)


class ToolRunnerNode(BaseNode):
    """Dispatches the pending tool call and records its outcome.

    A failed tool is data, not an exception: it becomes an error tool
    message the Planner reads on its next pass.
    """

    phase = GraphPhase.TOOL_RUNNER
    description = "Tool dispatch"

    def __init__(self, observability, tool_registry: ToolRegistry, config: EngineConfig,
                 validate_failures: bool = False):
        super().__init__(observability)
        self.tool_registry = tool_registry
        self.config = config
        self.validate_failures = validate_failures

    async def execute_core(self, state: RunState, context: NodeExecutionContext) -> Dict[str, Any]:
        pending = get_pending_tool_call(state)
        if pending is None or not pending.tool:
            raise PreconditionViolation(self.name, "no pending tool call")

        signature = tool_call_signature(pending.tool, pending.parameters, state["chat_id"])
        duplicate = self.config.deduplicate_tool_calls \
            and signature in (state.get("tool_call_signatures") or [])

        started_at = time.time() * 1000
        if duplicate:
            logger.info("Skipping duplicate tool call", tool=pending.tool, chat_id=state["chat_id"])
            result = ToolResult(
                success=False,
                error=f"Duplicate call to {pending.tool} with identical parameters was not re-run",
            )
        else:
            result = await self.tool_registry.execute_tool(
                pending.tool, pending.parameters, {"chat_id": state["chat_id"]}
            )
        finished_at = time.time() * 1000

        record = ToolExecution(
            tool_name=pending.tool,
            input=pending.parameters,
            output=result.data if result.success else None,
            success=result.success,
            error=result.error,
            task=pending.task,
            started_at=started_at,
            finished_at=finished_at,
        )

        if result.success:
            content = json.dumps(result.data, default=str)
            status = "success"
        elif duplicate:
            content = f"Skipped: {result.error}"
            status = "error"
        else:
            content = f"Error: {result.error}"
            status = "error"

        debug_info = dict(state.get("debug_info") or {})
        debug_info.pop("pending_tool_call", None)

        patch: Dict[str, Any] = {
            "messages": [ToolMessage(
                content=content,
                name=pending.tool,
                tool_call_id=str(uuid.uuid4()),
                status=status,
            )],
            "tools_used": [record.model_dump()],
            "debug_info": debug_info,
            "requires_validation": (not result.success) and self.validate_failures,
        }
        if not duplicate:
            patch["tool_call_signatures"] = [signature]
        return patch
