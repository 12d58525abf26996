import json

from langchain_core.messages import AIMessage, HumanMessage, ToolMessage

from domain.context.context_builder import (
    NO_TOOLS_EXECUTED,
    ContextBuilder,
    append_working_memory,
    format_history,
    truncate,
)


def tool_message(name, content, status="success"):
    return ToolMessage(content=content, name=name, tool_call_id=f"{name}-id", status=status)


def test_truncate():
    assert truncate("short") == "short"

    long_text = "x" * 2000
    truncated = truncate(long_text)
    assert truncated.startswith("x" * 1500)
    assert truncated.endswith("\n... (output truncated)")
    assert len(truncated) == 1500 + len("\n... (output truncated)")


def test_history_hides_node_thoughts():
    messages = [
        HumanMessage(content="hi"),
        AIMessage(content="Planner Thought: figure it out"),
        AIMessage(content="Executor Thought: use ls"),
        tool_message("list_files", '{"files": []}'),
        AIMessage(content="Here are the files"),
    ]

    chat, execution = format_history(messages)

    assert chat == "User: hi\nAssistant: Here are the files"
    assert execution == 'Tool: list_files\nResult: {"files": []}'

    chat_with_thoughts, _ = format_history(messages, include_thoughts=True)
    assert "Planner Thought" in chat_with_thoughts


def test_empty_execution_history():
    _, execution = format_history([HumanMessage(content="hi")])

    assert execution == NO_TOOLS_EXECUTED


def test_working_memory_is_bounded():
    memory = append_working_memory("", "first", 20)
    memory = append_working_memory(memory, "second entry here", 20)

    assert len(memory) == 20
    assert memory.endswith("second entry here")


def test_planner_sees_only_latest_tool_result(context_builder, initial_state):
    initial_state["messages"] = [
        tool_message("list_files", json.dumps({"files": ["old.py"]})),
        tool_message("list_files", json.dumps({"files": ["new.py"]})),
    ]

    context = context_builder.for_planner(initial_state)

    assert "new.py" in context.execution_history
    assert "old.py" not in context.execution_history
    assert context.user_query == "list the files in src"


def test_error_context_sees_all_tool_results(context_builder, initial_state):
    initial_state["messages"] = [
        tool_message("list_files", json.dumps({"files": ["old.py"]})),
        tool_message("always_fails", "Error: disk on fire", status="error"),
    ]
    initial_state["error"] = "Validation failed: wrong dir"

    context = context_builder.for_error(initial_state)

    assert "old.py" in context.execution_history
    assert "disk on fire" in context.execution_history
    assert context.error_details == "Validation failed: wrong dir"
    assert context.failed_task == "No specific task was being executed."


def test_executor_context_lists_tools(context_builder, initial_state):
    initial_state["current_task"] = "List files in src"

    context = context_builder.for_executor(initial_state)

    assert context.task == "List files in src"
    assert "Tool: list_files\nDescription: List files in a directory" in context.tool_descriptions


def test_validation_context_reads_last_execution(context_builder, initial_state):
    initial_state["tools_used"] = [{
        "tool_name": "always_fails", "input": {"x": 1}, "output": None,
        "success": False, "error": "disk on fire", "task": "Run it",
    }]

    context = context_builder.for_validation(initial_state)

    assert context.last_tool == "always_fails"
    assert context.tool_input == '{"x": 1}'
    assert context.tool_output == "disk on fire"


def test_failed_task_resolution(initial_state):
    assert ContextBuilder.failed_task(initial_state) is None

    initial_state["tools_used"] = [{"task": "from history"}]
    assert ContextBuilder.failed_task(initial_state) == "from history"

    initial_state["debug_info"] = {"pending_tool_call": {"tool": "t", "task": "pending"}}
    assert ContextBuilder.failed_task(initial_state) == "pending"

    initial_state["current_task"] = "active"
    assert ContextBuilder.failed_task(initial_state) == "active"

    initial_state["debug_info"]["failed_task"] = "rejected by validation"
    assert ContextBuilder.failed_task(initial_state) == "rejected by validation"
