from domain.context.state.state_factory import StateFactory
from domain.models.agent_state import (
    DEFAULT_NODE_LIMITS,
    ENTRY_PHASE,
    EngineConfig,
    GraphPhase,
    NODE_PHASES,
    PendingToolCall,
    get_pending_tool_call,
    get_state_summary,
)


def test_initial_state_is_fresh():
    state = StateFactory.create_initial_state("hello", "chat-42")

    assert state["messages"] == []
    assert state["user_input"] == "hello"
    assert state["chat_id"] == "chat-42"
    assert state["current_phase"] == ENTRY_PHASE == GraphPhase.PLANNER
    assert state["current_plan"] == []
    assert state["current_task"] is None
    assert state["tools_used"] == []
    assert state["is_completed"] is False
    assert state["error"] is None
    assert state["iteration"] == 0
    assert state["node_iterations"] == {phase.value: 0 for phase in NODE_PHASES}
    assert state["start_time"] > 0


def test_initial_state_copies_limits_from_config():
    config = EngineConfig(max_graph_iterations=7, max_node_iterations={GraphPhase.PLANNER: 2})
    state = StateFactory.create_initial_state("hello", "chat-42", config, retrieved_memory="notes")

    assert state["max_graph_iterations"] == 7
    assert state["max_node_iterations"] == {"planner": 2}
    assert state["retrieved_memory"] == "notes"

    # The state holds a copy, not the config's own mapping
    state["max_node_iterations"]["planner"] = 99
    assert config.node_limit(GraphPhase.PLANNER) == 2


def test_default_node_limits():
    config = EngineConfig()

    assert config.max_node_iterations == DEFAULT_NODE_LIMITS
    assert config.node_limit(GraphPhase.VALIDATION) == 5
    assert config.node_limit(GraphPhase.COMPLETED) is None


def test_pending_tool_call_round_trip():
    state = StateFactory.create_initial_state("hello", "chat-42")
    assert get_pending_tool_call(state) is None

    state["debug_info"] = {"pending_tool_call": {"tool": "list_files", "parameters": {"path": "src"}}}
    pending = get_pending_tool_call(state)

    assert isinstance(pending, PendingToolCall)
    assert pending.tool == "list_files"
    assert pending.task is None


def test_state_summary():
    state = StateFactory.create_initial_state("hello", "chat-42")
    state["current_plan"] = ["one", "two"]

    summary = get_state_summary(state)

    assert summary["phase"] == "planner"
    assert summary["plan_size"] == 2
    assert summary["tools_used"] == 0
