import asyncio

import pytest
from pydantic import BaseModel

from domain.events.events import EventType
from domain.tool.tool_registry import ToolRegistry
from domain.tool.tool_validator import ToolParameterValidator


class ReadFileParams(BaseModel):
    path: str
    max_lines: int = 100


def test_listing_and_search(tool_registry):
    names = [tool["name"] for tool in tool_registry.get_available_tools()]

    assert names == ["list_files", "always_fails"]
    assert tool_registry.get_tool_info("list_files")["category"] == "filesystem"
    assert tool_registry.get_tool_info("missing") is None
    assert [t["name"] for t in tool_registry.get_tools_by_category("general")] == ["always_fails"]
    assert [t["name"] for t in tool_registry.search_tools("DIRECTORY")] == ["list_files"]


def test_register_replaces_existing(tool_registry):
    tool_registry.register_tool("list_files", lambda p, c: [], description="v2", category="fs2")

    assert tool_registry.get_tool_info("list_files")["description"] == "v2"
    assert tool_registry.get_tools_by_category("filesystem") == []
    assert tool_registry.tool_names().count("list_files") == 1


def test_register_requires_name(tool_registry):
    with pytest.raises(ValueError):
        tool_registry.register_tool("", lambda p, c: None)


def test_decorator_registration():
    registry = ToolRegistry()

    @registry.tool("read_file", parameters_model=ReadFileParams, category="filesystem")
    def read_file(parameters, context):
        """Read a file from the workspace"""
        return {"path": parameters["path"]}

    info = registry.get_tool_info("read_file")
    assert info["description"] == "Read a file from the workspace"
    assert "path" in info["parameters"]["properties"]
    registry.executor.shutdown()


@pytest.mark.asyncio
async def test_execute_success_publishes_events(tool_registry, recorder):
    result = await tool_registry.execute_tool("list_files", {"path": "src"}, {"chat_id": "chat-1"})

    assert result.success is True
    assert result.data["files"] == ["a.py", "b.py"]
    assert result.execution_time_ms >= 0
    assert recorder.of_type(EventType.TOOL_EXECUTION_STARTED)[0]["tool_name"] == "list_files"
    completed = recorder.of_type(EventType.TOOL_EXECUTION_COMPLETED)
    assert completed[0]["chat_id"] == "chat-1"


@pytest.mark.asyncio
async def test_unknown_tool(tool_registry, recorder):
    result = await tool_registry.execute_tool("rm_rf", {}, {"chat_id": "chat-1"})

    assert result.success is False
    assert result.error == "Tool not found: rm_rf"
    assert recorder.of_type(EventType.TOOL_EXECUTION_ERROR)[0]["error"] == "Tool not found: rm_rf"


@pytest.mark.asyncio
async def test_handler_exception_becomes_result(tool_registry):
    result = await tool_registry.execute_tool("always_fails", {}, {"chat_id": "chat-1"})

    assert result.success is False
    assert result.error == "disk on fire"


@pytest.mark.asyncio
async def test_invalid_parameters(tool_registry):
    tool_registry.register_tool("read_file", lambda p, c: p, parameters_model=ReadFileParams)

    result = await tool_registry.execute_tool("read_file", {"max_lines": "many"}, {})

    assert result.success is False
    assert result.error.startswith("Invalid parameters for read_file:")
    assert "path" in result.error


@pytest.mark.asyncio
async def test_validated_parameters_reach_handler(tool_registry):
    tool_registry.register_tool("read_file", lambda p, c: p, parameters_model=ReadFileParams)

    result = await tool_registry.execute_tool("read_file", {"path": "README.md"}, {})

    assert result.data == {"path": "README.md", "max_lines": 100}


@pytest.mark.asyncio
async def test_async_handler_timeout(tool_registry):
    async def slow(parameters, context):
        await asyncio.sleep(5)

    tool_registry.register_tool("slow", slow, timeout_seconds=0.05)

    result = await tool_registry.execute_tool("slow", {}, {})

    assert result.success is False
    assert result.error == "Tool execution timeout after 0.05s"


@pytest.mark.asyncio
async def test_async_handler_receives_context(tool_registry):
    async def whoami(parameters, context):
        return context["chat_id"]

    tool_registry.register_tool("whoami", whoami)

    result = await tool_registry.execute_tool("whoami", {}, {"chat_id": "chat-7"})

    assert result.data == "chat-7"


def test_validator_rejects_non_object():
    result = ToolParameterValidator.validate_tool_call(None, ["not", "a", "dict"])

    assert result.is_valid is False
    assert result.errors == ["Parameters must be an object"]
