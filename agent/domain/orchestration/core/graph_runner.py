import asyncio
from typing import Dict, Any, AsyncIterator, Mapping, Optional

import structlog
from langchain_core.messages import AIMessage
from langchain_core.runnables import RunnableConfig
from langgraph.graph import StateGraph, START, END

from domain.models.agent_state import (
    EngineConfig,
    GraphPhase,
    RunState,
    TERMINAL_PHASES,
    get_state_summary,
)
from domain.orchestration.core.errors import TransitionRejected
from domain.orchestration.core.transitions import TransitionLogic, TransitionValidator
from domain.orchestration.nodes.base_node import BaseNode
from infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)


def as_phase(value: Any) -> Optional[GraphPhase]:
    if isinstance(value, GraphPhase):
        return value
    try:
        return GraphPhase(value)
    except ValueError:
        return None


class GraphRunner:
    """Drives registered nodes over a LangGraph state machine.

    After every node the runner proposes the next phase, checks it
    against the transition table, stamps ``current_phase`` and bumps
    ``iteration``. The graph ends on ``is_completed``, on a terminal
    phase, or on a phase with no registered node.
    """

    def __init__(
        self,
        nodes: Mapping[GraphPhase, BaseNode],
        config: Optional[EngineConfig] = None,
        transition_logic: Optional[TransitionLogic] = None,
        validator: Optional[TransitionValidator] = None,
    ):
        self.nodes: Dict[GraphPhase, BaseNode] = dict(nodes)
        self.config = config or EngineConfig()
        self.transition_logic = transition_logic or TransitionLogic(
            validation_enabled=GraphPhase.VALIDATION in self.nodes
        )
        self.validator = validator or TransitionValidator(registered=self.nodes.keys())
        self.workflow = self._create_workflow()

    def _create_workflow(self):
        """Create the phase graph: one node per phase, all edges conditional"""

        workflow = StateGraph(RunState)

        path_map = {phase.value: phase.value for phase in self.nodes}
        path_map[END] = END

        for phase, node in self.nodes.items():
            workflow.add_node(phase.value, self._make_step(node))

        workflow.add_conditional_edges(START, self.route, path_map)
        for phase in self.nodes:
            workflow.add_conditional_edges(phase.value, self.route, path_map)

        return workflow.compile()

    def _make_step(self, node: BaseNode):
        async def step(state: RunState, config: RunnableConfig) -> Dict[str, Any]:
            cancel_event = ((config or {}).get("configurable") or {}).get("cancel_event")
            patch = await node.execute(state, cancel_event)
            return self.advance(node.phase, state, patch)

        step.__name__ = f"{node.name}_step"
        return step

    def advance(self, phase: GraphPhase, state: Mapping[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
        """Validate the hand-off out of ``phase`` and stamp the step counters"""

        merged = {**state, **patch}
        proposed = self.transition_logic.determine_next_phase(phase, merged)
        next_phase = proposed
        rejected = not self.validator.is_valid(phase, proposed)

        if rejected:
            rejection = TransitionRejected(phase.value, proposed.value)
            logger.warning("Transition rejected", chat_id=state.get("chat_id"),
                           from_phase=phase.value, to_phase=proposed.value)

            recoverable = phase != GraphPhase.ERROR_HANDLER \
                and self.validator.is_valid(phase, GraphPhase.ERROR_HANDLER)
            patch = {**patch, "error": str(rejection)}
            if recoverable:
                patch["is_completed"] = False
                next_phase = GraphPhase.ERROR_HANDLER
            else:
                patch["is_completed"] = True
                patch["messages"] = list(patch.get("messages") or []) + [
                    AIMessage(content=f"Run stopped: {rejection}", name=phase.value)
                ]
                next_phase = GraphPhase.ERROR
            merged = {**state, **patch}

        agent_logger.log_workflow_transition(
            chat_id=state.get("chat_id"),
            from_node=phase.value,
            to_node=next_phase.value,
            condition="rejected" if rejected else None,
            state_summary=get_state_summary(merged),
        )

        return {
            **patch,
            "current_phase": next_phase,
            "iteration": state.get("iteration", 0) + 1,
        }

    def route(self, state: RunState) -> str:
        """Name of the node to run next, or END"""

        if state.get("is_completed"):
            return END

        phase = as_phase(state.get("current_phase"))
        if phase is None or phase in TERMINAL_PHASES:
            return END
        if phase not in self.nodes:
            logger.warning("No node registered for phase", phase=phase.value,
                           chat_id=state.get("chat_id"))
            return END
        return phase.value

    def _run_config(self, state: RunState, cancel_event: Optional[asyncio.Event]) -> Dict[str, Any]:
        max_graph_iterations = state.get("max_graph_iterations") or self.config.max_graph_iterations
        return {
            # One superstep per node; nodes stop themselves at max_graph_iterations
            "recursion_limit": max_graph_iterations + 5,
            "configurable": {"cancel_event": cancel_event},
        }

    async def run(self, state: RunState, cancel_event: Optional[asyncio.Event] = None) -> RunState:
        """Run to completion and return the final state"""

        return await self.workflow.ainvoke(state, config=self._run_config(state, cancel_event))

    async def stream(self, state: RunState, cancel_event: Optional[asyncio.Event] = None) -> AsyncIterator[Dict[str, Any]]:
        """Yield ``{phase: patch}`` after every step"""

        async for update in self.workflow.astream(
            state, config=self._run_config(state, cancel_event), stream_mode="updates"
        ):
            yield update
