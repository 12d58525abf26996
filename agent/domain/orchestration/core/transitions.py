from typing import Dict, Any, FrozenSet, Iterable, Mapping, Optional

from domain.models.agent_state import GraphPhase, TERMINAL_PHASES


TRANSITIONS: Dict[GraphPhase, FrozenSet[GraphPhase]] = {
    GraphPhase.PLANNER: frozenset({
        GraphPhase.EXECUTOR, GraphPhase.COMPLETED, GraphPhase.ERROR_HANDLER, GraphPhase.ERROR,
    }),
    GraphPhase.EXECUTOR: frozenset({
        GraphPhase.TOOL_RUNNER, GraphPhase.ERROR_HANDLER, GraphPhase.ERROR,
    }),
    GraphPhase.TOOL_RUNNER: frozenset({
        GraphPhase.PLANNER, GraphPhase.VALIDATION, GraphPhase.ERROR_HANDLER, GraphPhase.ERROR,
    }),
    GraphPhase.VALIDATION: frozenset({
        GraphPhase.PLANNER, GraphPhase.ERROR_HANDLER, GraphPhase.ERROR,
    }),
    GraphPhase.ERROR_HANDLER: frozenset({
        GraphPhase.PLANNER, GraphPhase.ERROR,
    }),
    GraphPhase.COMPLETED: frozenset(),
    GraphPhase.ERROR: frozenset(),
}


class TransitionValidator:
    """Authoritative check of phase-to-phase hand-offs"""

    def __init__(
        self,
        transitions: Optional[Mapping[GraphPhase, Iterable[GraphPhase]]] = None,
        registered: Optional[Iterable[GraphPhase]] = None,
    ):
        source = transitions if transitions is not None else TRANSITIONS
        self.transitions = {phase: frozenset(targets) for phase, targets in source.items()}
        # Phases with an executable node; terminal phases are always reachable
        self.registered = frozenset(registered) if registered is not None else None

    def is_valid(self, from_phase: GraphPhase, to_phase: GraphPhase) -> bool:
        if to_phase not in self.transitions.get(from_phase, frozenset()):
            return False
        if self.registered is not None and to_phase not in TERMINAL_PHASES:
            return to_phase in self.registered
        return True

    def allowed_targets(self, from_phase: GraphPhase) -> FrozenSet[GraphPhase]:
        targets = self.transitions.get(from_phase, frozenset())
        if self.registered is None:
            return targets
        return frozenset(p for p in targets if p in TERMINAL_PHASES or p in self.registered)


class TransitionLogic:
    """Proposes the next phase from the phase just executed and the merged state"""

    def __init__(self, validation_enabled: bool = False):
        self.validation_enabled = validation_enabled

    def determine_next_phase(self, from_phase: GraphPhase, state: Mapping[str, Any]) -> GraphPhase:
        if state.get("is_completed"):
            return GraphPhase.ERROR if state.get("error") else GraphPhase.COMPLETED
        if state.get("error"):
            return GraphPhase.ERROR_HANDLER

        if from_phase == GraphPhase.PLANNER:
            return GraphPhase.EXECUTOR
        if from_phase == GraphPhase.EXECUTOR:
            return GraphPhase.TOOL_RUNNER
        if from_phase == GraphPhase.TOOL_RUNNER:
            if state.get("requires_validation") and self.validation_enabled:
                return GraphPhase.VALIDATION
            return GraphPhase.PLANNER
        if from_phase in (GraphPhase.VALIDATION, GraphPhase.ERROR_HANDLER):
            return GraphPhase.PLANNER

        # Terminal or unknown source: nothing left to run
        return GraphPhase.COMPLETED
