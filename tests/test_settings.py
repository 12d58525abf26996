import pytest

from conftest import ScriptedService
from domain.models.agent_state import GraphPhase
from domain.orchestration.core.main_agent import AgentOrchestrator
from infrastructure.config.settings import AgentSettings, get_settings


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults():
    config = AgentSettings(_env_file=None).to_engine_config()

    assert config.max_graph_iterations == 25
    assert config.max_task_retries == 3
    assert config.deduplicate_tool_calls is True
    assert config.node_limit(GraphPhase.ERROR_HANDLER) == 5


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("AGENT_MAX_GRAPH_ITERATIONS", "7")
    monkeypatch.setenv("AGENT_MAX_NODE_ITERATIONS", '{"planner": 3}')
    monkeypatch.setenv("AGENT_DEDUPLICATE_TOOL_CALLS", "false")

    config = get_settings().to_engine_config()

    assert config.max_graph_iterations == 7
    assert config.deduplicate_tool_calls is False
    assert config.node_limit(GraphPhase.PLANNER) == 3
    # Phases missing from the override keep their defaults
    assert config.node_limit(GraphPhase.EXECUTOR) == 10


def test_get_settings_is_cached():
    assert get_settings() is get_settings()


def test_orchestrator_from_settings(tool_registry):
    settings = AgentSettings(_env_file=None, max_graph_iterations=9, log_format="console")

    agent = AgentOrchestrator.from_settings(
        tool_registry=tool_registry,
        settings=settings,
        planner_service=ScriptedService(),
        executor_service=ScriptedService(),
        correction_service=ScriptedService(),
    )

    assert agent.config.max_graph_iterations == 9
    assert set(agent.nodes) == {
        GraphPhase.PLANNER, GraphPhase.EXECUTOR, GraphPhase.TOOL_RUNNER, GraphPhase.ERROR_HANDLER,
    }


def test_orchestrator_needs_a_model_or_services(tool_registry):
    with pytest.raises(ValueError):
        AgentOrchestrator(tool_registry=tool_registry)


def test_validation_node_registered_with_service(tool_registry):
    agent = AgentOrchestrator(
        tool_registry=tool_registry,
        planner_service=ScriptedService(),
        executor_service=ScriptedService(),
        correction_service=ScriptedService(),
        validation_service=ScriptedService(),
    )

    assert GraphPhase.VALIDATION in agent.nodes
    assert agent.runner.transition_logic.validation_enabled is True
