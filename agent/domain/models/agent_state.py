import operator
from typing import Dict, Any, List, Optional, Annotated, TypedDict
from pydantic import BaseModel, Field, field_validator
from enum import Enum
from langchain_core.messages import BaseMessage
from langgraph.graph.message import add_messages


class GraphPhase(str, Enum):
    """Canonical phase set: every node identifier plus the terminal states"""
    PLANNER = "planner"
    EXECUTOR = "executor"
    TOOL_RUNNER = "tool_runner"
    VALIDATION = "validation"
    ERROR_HANDLER = "error_handler"
    COMPLETED = "completed"
    ERROR = "error"


NODE_PHASES = frozenset({
    GraphPhase.PLANNER,
    GraphPhase.EXECUTOR,
    GraphPhase.TOOL_RUNNER,
    GraphPhase.VALIDATION,
    GraphPhase.ERROR_HANDLER,
})

TERMINAL_PHASES = frozenset({GraphPhase.COMPLETED, GraphPhase.ERROR})

ENTRY_PHASE = GraphPhase.PLANNER

DEFAULT_NODE_LIMITS: Dict[str, int] = {
    GraphPhase.PLANNER.value: 10,
    GraphPhase.EXECUTOR.value: 10,
    GraphPhase.TOOL_RUNNER.value: 10,
    GraphPhase.VALIDATION.value: 5,
    GraphPhase.ERROR_HANDLER.value: 5,
}


class EngineConfig(BaseModel):
    """Immutable per-run limits and switches"""
    max_graph_iterations: int = Field(default=25, gt=0, description="Global step budget for one run")
    max_node_iterations: Dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_NODE_LIMITS),
        description="Per-phase execution caps; a missing phase is uncapped"
    )
    max_task_retries: int = Field(default=3, gt=0, description="Consecutive tool failures tolerated per task")
    deduplicate_tool_calls: bool = Field(default=True)
    max_repair_attempts: int = Field(default=2, ge=0, description="Model repair rounds per decision")
    tool_timeout_seconds: float = Field(default=60.0, gt=0)
    max_working_memory_chars: int = Field(default=2000, gt=0)

    model_config = {"frozen": True}

    @field_validator("max_node_iterations", mode="before")
    @classmethod
    def _normalize_phase_keys(cls, value: Dict[Any, int]) -> Dict[str, int]:
        return {
            (key.value if isinstance(key, GraphPhase) else str(key)): limit
            for key, limit in value.items()
        }

    def node_limit(self, phase: GraphPhase) -> Optional[int]:
        """Cap configured for a phase, or None when uncapped"""
        return self.max_node_iterations.get(phase.value)


class ToolExecution(BaseModel):
    """Audit record for one tool dispatch; never mutated after append"""
    tool_name: str
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[Any] = None
    success: bool
    error: Optional[str] = None
    task: Optional[str] = Field(None, description="Plan task the call was generated for")
    started_at: float = Field(description="Epoch milliseconds")
    finished_at: float = Field(description="Epoch milliseconds")


class PendingToolCall(BaseModel):
    """Tool call decided by the Executor, consumed by the Tool-Runner"""
    tool: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    task: Optional[str] = None


class NodeExecutionContext(BaseModel):
    """Lightweight context handed to a node's core logic"""
    timestamp: float
    phase: GraphPhase
    chat_id: str
    iteration: int


class RunState(TypedDict):
    """Per-turn state threaded through every node.

    Fields absent from a node's patch are left unchanged; fields present
    with an empty value (None, [], "") replace the current value.
    """
    messages: Annotated[List[BaseMessage], add_messages]
    user_input: str
    chat_id: str
    current_phase: GraphPhase
    current_plan: List[str]
    current_task: Optional[str]
    current_task_retry_count: int
    tools_used: Annotated[List[Dict[str, Any]], operator.add]
    tool_call_signatures: Annotated[List[str], operator.add]
    working_memory: str
    retrieved_memory: str
    requires_validation: bool
    is_completed: bool
    iteration: int
    node_iterations: Dict[str, int]
    max_graph_iterations: int
    max_node_iterations: Dict[str, int]
    error: Optional[str]
    debug_info: Dict[str, Any]
    start_time: float
    final_output: Optional[str]


def get_pending_tool_call(state: RunState) -> Optional[PendingToolCall]:
    """Read the Executor's handoff from debug_info, if any"""

    raw = (state.get("debug_info") or {}).get("pending_tool_call")
    if not raw:
        return None
    if isinstance(raw, PendingToolCall):
        return raw
    return PendingToolCall.model_validate(raw)


def get_state_summary(state: RunState) -> Dict[str, Any]:
    """Compact view of a state, used in logs and events"""
    return {
        "chat_id": state.get("chat_id"),
        "phase": _phase_value(state.get("current_phase")),
        "iteration": state.get("iteration", 0),
        "plan_size": len(state.get("current_plan") or []),
        "current_task": state.get("current_task"),
        "tools_used": len(state.get("tools_used") or []),
        "is_completed": state.get("is_completed", False),
        "error": state.get("error"),
    }


def _phase_value(phase: Any) -> Optional[str]:
    if isinstance(phase, GraphPhase):
        return phase.value
    return phase
