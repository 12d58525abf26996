import time
from typing import Optional

from domain.models.agent_state import EngineConfig, RunState, ENTRY_PHASE, NODE_PHASES


class StateFactory:
    """Builds the initial state for a new run. Performs no I/O."""

    @staticmethod
    def create_initial_state(
        user_input: str,
        chat_id: str,
        config: Optional[EngineConfig] = None,
        retrieved_memory: str = "",
    ) -> RunState:
        """Fresh state: empty log and plan, zero counters, entry phase"""

        config = config or EngineConfig()

        return {
            "messages": [],
            "user_input": user_input,
            "chat_id": chat_id,
            "current_phase": ENTRY_PHASE,
            "current_plan": [],
            "current_task": None,
            "current_task_retry_count": 0,
            "tools_used": [],
            "tool_call_signatures": [],
            "working_memory": "",
            "retrieved_memory": retrieved_memory,
            "requires_validation": False,
            "is_completed": False,
            "iteration": 0,
            "node_iterations": {phase.value: 0 for phase in NODE_PHASES},
            "max_graph_iterations": config.max_graph_iterations,
            "max_node_iterations": dict(config.max_node_iterations),
            "error": None,
            "debug_info": {},
            "start_time": time.time() * 1000,
            "final_output": None,
        }
