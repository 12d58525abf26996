from typing import Optional


class AgentRuntimeError(Exception):
    """Base class for failures raised inside the graph runtime.

    ``fatal`` errors end the run; every other error is routed to the
    error handler by the node execution template.
    """

    fatal = False


class IterationLimitExceeded(AgentRuntimeError):
    """A global or per-phase iteration budget is exhausted"""

    fatal = True

    def __init__(self, limit: int, phase: Optional[str] = None):
        self.limit = limit
        self.phase = phase
        if phase is None:
            message = f"Max graph iterations ({limit}) exceeded"
        else:
            message = f"Max node iterations ({limit}) exceeded for {phase}"
        super().__init__(message)


class RunCancelled(AgentRuntimeError):
    """The caller signalled cancellation between steps"""

    fatal = True

    def __init__(self, chat_id: str):
        self.chat_id = chat_id
        super().__init__(f"Run cancelled for chat {chat_id}")


class PreconditionViolation(AgentRuntimeError):
    """A node's required input is missing from state"""

    def __init__(self, phase: str, requirement: str):
        self.phase = phase
        self.requirement = requirement
        super().__init__(f"{phase}: precondition failed, {requirement}")


class DecisionServiceError(AgentRuntimeError):
    """A model-backed service could not produce a schema-valid decision"""

    def __init__(self, service: str, message: str, attempts: int = 0):
        self.service = service
        self.attempts = attempts
        super().__init__(f"{service} failed after {attempts} attempt(s): {message}")


class TaskRetriesExhausted(AgentRuntimeError):
    """The same task kept failing at the tool level"""

    def __init__(self, task: Optional[str], retries: int):
        self.task = task
        self.retries = retries
        super().__init__(f'Task "{task}" failed {retries} times in a row')


class TransitionRejected(AgentRuntimeError):
    """A proposed phase change is absent from the transition table"""

    def __init__(self, from_phase: str, to_phase: str):
        self.from_phase = from_phase
        self.to_phase = to_phase
        super().__init__(f"Illegal transition {from_phase} -> {to_phase}")
