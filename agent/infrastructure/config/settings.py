from functools import lru_cache
from typing import Dict

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from domain.models.agent_state import EngineConfig, DEFAULT_NODE_LIMITS


class AgentSettings(BaseSettings):
    # ── Iteration budgets ─────────────────────────────────────────────────────
    max_graph_iterations: int = 25
    # JSON object in the environment, e.g. AGENT_MAX_NODE_ITERATIONS='{"planner": 8}'
    max_node_iterations: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_NODE_LIMITS))
    max_task_retries: int = 3

    # ── Decisions and tools ───────────────────────────────────────────────────
    max_repair_attempts: int = 2
    deduplicate_tool_calls: bool = True
    tool_timeout_seconds: float = 60.0
    max_working_memory_chars: int = 2000

    # ── Logging ───────────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"
    service_name: str = "agent-runtime"

    model_config = SettingsConfigDict(env_prefix="AGENT_", env_file=".env", extra="ignore")

    def to_engine_config(self) -> EngineConfig:
        # Partial overrides keep the defaults for phases they omit
        limits = dict(DEFAULT_NODE_LIMITS)
        limits.update(self.max_node_iterations)
        return EngineConfig(
            max_graph_iterations=self.max_graph_iterations,
            max_node_iterations=limits,
            max_task_retries=self.max_task_retries,
            deduplicate_tool_calls=self.deduplicate_tool_calls,
            max_repair_attempts=self.max_repair_attempts,
            tool_timeout_seconds=self.tool_timeout_seconds,
            max_working_memory_chars=self.max_working_memory_chars,
        )


@lru_cache
def get_settings() -> AgentSettings:
    return AgentSettings()
