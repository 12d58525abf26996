import json
import re
from typing import Dict, List, Any, Optional, Sequence, Tuple
from pydantic import BaseModel, Field
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage

from domain.models.agent_state import RunState, get_pending_tool_call
from domain.tool.tool_registry import ToolRegistry

MAX_TOOL_OUTPUT_CHARS = 1500
NO_TOOLS_EXECUTED = "No tools have been executed yet."
_THOUGHT_PREFIX = re.compile(r"^(Planner|Executor|Validation) Thought:")


class PlannerContext(BaseModel):
    user_query: str
    current_plan: List[str] = Field(default_factory=list)
    chat_history: str = ""
    execution_history: str = NO_TOOLS_EXECUTED
    working_memory: str = ""
    retrieved_memory: str = ""


class ExecutorContext(BaseModel):
    user_query: str
    task: str
    available_tools: List[str] = Field(default_factory=list)
    tool_descriptions: str = ""
    working_memory: str = ""


class ErrorHandlerContext(BaseModel):
    user_query: str
    current_plan: List[str] = Field(default_factory=list)
    failed_task: str
    error_details: str
    execution_history: str = NO_TOOLS_EXECUTED


class ValidationContext(BaseModel):
    user_query: str
    current_plan: List[str] = Field(default_factory=list)
    last_tool: str = "None"
    tool_input: str = "{}"
    tool_output: str = ""
    error: str = ""
    working_memory: str = ""


def truncate(text: str, limit: int = MAX_TOOL_OUTPUT_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n... (output truncated)"


def format_tool_message(message: ToolMessage) -> str:
    content = message.content if isinstance(message.content, str) else json.dumps(message.content, default=str)
    return f"Tool: {message.name}\nResult: {truncate(content)}"


def format_history(messages: Sequence[BaseMessage], include_thoughts: bool = False) -> Tuple[str, str]:
    """Split the message log into chat history and tool execution history"""

    chat_history: List[str] = []
    execution_history: List[str] = []

    for message in messages:
        if isinstance(message, HumanMessage):
            chat_history.append(f"User: {message.content}")
        elif isinstance(message, AIMessage):
            content = str(message.content)
            if include_thoughts or not _THOUGHT_PREFIX.match(content):
                chat_history.append(f"Assistant: {content}")
        elif isinstance(message, ToolMessage):
            execution_history.append(format_tool_message(message))

    return "\n".join(chat_history), "\n\n---\n\n".join(execution_history) or NO_TOOLS_EXECUTED


def last_tool_message(messages: Sequence[BaseMessage]) -> Optional[ToolMessage]:
    for message in reversed(messages):
        if isinstance(message, ToolMessage):
            return message
    return None


def append_working_memory(current: str, entry: str, limit: int) -> str:
    """Rolling log; the oldest text is dropped once ``limit`` is reached"""

    combined = f"{current}\n{entry}".strip() if current else entry.strip()
    if len(combined) <= limit:
        return combined
    return combined[-limit:]


class ContextBuilder:
    """Assembles the structured input each decision service receives"""

    def __init__(self, tool_registry: ToolRegistry):
        self.tool_registry = tool_registry

    def for_planner(self, state: RunState) -> PlannerContext:
        messages = state.get("messages") or []
        chat_history, _ = format_history(messages)
        last_tool = last_tool_message(messages)

        return PlannerContext(
            user_query=state["user_input"],
            current_plan=list(state.get("current_plan") or []),
            chat_history=chat_history,
            execution_history=format_tool_message(last_tool) if last_tool else NO_TOOLS_EXECUTED,
            working_memory=state.get("working_memory") or "",
            retrieved_memory=state.get("retrieved_memory") or "",
        )

    def for_executor(self, state: RunState) -> ExecutorContext:
        task = state.get("current_task")
        if not task:
            raise ValueError("No current_task in state for the executor")

        tools = self.tool_registry.get_available_tools()
        descriptions = "\n\n---\n\n".join(
            f"Tool: {tool['name']}\nDescription: {tool['description']}\n"
            f"Parameters: {json.dumps(tool['parameters'])}"
            for tool in tools
        )

        return ExecutorContext(
            user_query=state["user_input"],
            task=task,
            available_tools=[tool["name"] for tool in tools],
            tool_descriptions=descriptions,
            working_memory=state.get("working_memory") or "",
        )

    def for_error(self, state: RunState) -> ErrorHandlerContext:
        _, execution_history = format_history(state.get("messages") or [])

        return ErrorHandlerContext(
            user_query=state["user_input"],
            current_plan=list(state.get("current_plan") or []),
            failed_task=self.failed_task(state) or "No specific task was being executed.",
            error_details=state.get("error") or "Unknown error.",
            execution_history=execution_history,
        )

    def for_validation(self, state: RunState) -> ValidationContext:
        executions = state.get("tools_used") or []
        last = executions[-1] if executions else {}
        output = last.get("error") or json.dumps(last.get("output"), default=str)

        return ValidationContext(
            user_query=state["user_input"],
            current_plan=list(state.get("current_plan") or []),
            last_tool=last.get("tool_name") or "None",
            tool_input=json.dumps(last.get("input") or {}, default=str),
            tool_output=truncate(output or ""),
            error=state.get("error") or "No explicit error, but validation was requested.",
            working_memory=state.get("working_memory") or "",
        )

    @staticmethod
    def failed_task(state: RunState) -> Optional[str]:
        """Task the last failure belongs to.

        A task recorded by validation wins over the active one, which
        validation may already have replaced with a corrected step.
        """

        recorded = (state.get("debug_info") or {}).get("failed_task")
        if recorded:
            return recorded
        if state.get("current_task"):
            return state["current_task"]
        pending = get_pending_tool_call(state)
        if pending is not None and pending.task:
            return pending.task
        executions = state.get("tools_used") or []
        if executions:
            return executions[-1].get("task")
        return None
