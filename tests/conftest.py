from typing import Any, List

import pytest

from domain.context.context_builder import ContextBuilder
from domain.context.state.state_factory import StateFactory
from domain.events.event_dispatcher import InternalEventDispatcher
from domain.models.agent_state import EngineConfig
from domain.tool.tool_registry import ToolRegistry
from infrastructure.observability.observability_manager import ObservabilityManager
from infrastructure.observability.performance_monitor import PerformanceMonitor


class ScriptedService:
    """Decision service double: returns (or raises) scripted items in order"""

    def __init__(self, *items: Any):
        self.items: List[Any] = list(items)
        self.contexts: List[Any] = []

    async def decide(self, context):
        self.contexts.append(context)
        if not self.items:
            raise AssertionError("ScriptedService ran out of decisions")
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class EventRecorder:
    def __init__(self):
        self.events = []

    def __call__(self, event_type, data):
        self.events.append((event_type, data))

    def of_type(self, event_type):
        return [data for recorded_type, data in self.events if recorded_type == event_type]


@pytest.fixture
def dispatcher():
    return InternalEventDispatcher()


@pytest.fixture
def recorder(dispatcher):
    recorder = EventRecorder()
    dispatcher.subscribe_all(recorder)
    return recorder


@pytest.fixture
def performance_monitor():
    return PerformanceMonitor()


@pytest.fixture
def observability(dispatcher, performance_monitor):
    return ObservabilityManager(dispatcher, performance_monitor)


@pytest.fixture
def tool_registry(dispatcher):
    registry = ToolRegistry(dispatcher=dispatcher)

    def list_files(parameters, context):
        return {"path": parameters.get("path", "."), "files": ["a.py", "b.py"]}

    def always_fails(parameters, context):
        raise RuntimeError("disk on fire")

    registry.register_tool("list_files", list_files, description="List files in a directory",
                           category="filesystem")
    registry.register_tool("always_fails", always_fails, description="Fails every time")
    yield registry
    registry.executor.shutdown()


@pytest.fixture
def context_builder(tool_registry):
    return ContextBuilder(tool_registry)


@pytest.fixture
def engine_config():
    return EngineConfig()


@pytest.fixture
def initial_state(engine_config):
    return StateFactory.create_initial_state("list the files in src", "chat-1", engine_config)
