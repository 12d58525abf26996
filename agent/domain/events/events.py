import time
from typing import Dict, Any, Optional, Literal
from pydantic import BaseModel, Field
from enum import Enum


class EventType(str, Enum):
    """Telemetry event types published by the runtime"""
    AGENT_PHASE_STARTED = "agent:phase:started"
    AGENT_PHASE_COMPLETED = "agent:phase:completed"
    TOOL_EXECUTION_STARTED = "tool:execution:started"
    TOOL_EXECUTION_COMPLETED = "tool:execution:completed"
    TOOL_EXECUTION_ERROR = "tool:execution:error"
    SYSTEM_INFO = "system:info"
    SYSTEM_WARNING = "system:warning"
    SYSTEM_ERROR = "system:error"


def _now_ms() -> float:
    return time.time() * 1000


class BaseEventPayload(BaseModel):
    """Fields shared by every payload"""
    timestamp: float = Field(default_factory=_now_ms)
    chat_id: Optional[str] = None
    source: Optional[str] = None


class AgentPhaseEventPayload(BaseEventPayload):
    """Phase start/completion"""
    phase: str
    iteration: int
    duration_ms: Optional[float] = None
    error: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class ToolExecutionEventPayload(BaseEventPayload):
    """Tool dispatch lifecycle"""
    tool_name: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    duration_ms: Optional[float] = None
    result: Optional[Any] = None
    error: Optional[str] = None


class SystemEventPayload(BaseEventPayload):
    """Free-form system message"""
    level: Literal["info", "warning", "error"] = "info"
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
