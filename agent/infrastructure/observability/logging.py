import structlog
import logging
import sys
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import os


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "agent-runtime"
) -> None:
    """Route structlog through stdlib logging; ``log_format`` is "json" or "console"."""

    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            add_service_context,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("ENVIRONMENT", "development"),
    )


def add_service_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add run context to all log entries"""

    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()

    # Chat ID is bound for the duration of a run
    chat_id = structlog.contextvars.get_contextvars().get("chat_id")
    if chat_id and "chat_id" not in event_dict:
        event_dict["chat_id"] = chat_id

    return event_dict


class AgentLogger:
    """Specialized logger for graph runtime operations"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_agent_event(
        self,
        event_type: str,
        phase: str,
        chat_id: str,
        data: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        """Log node lifecycle events"""

        self.logger.info(
            "agent_event",
            event_type=event_type,
            phase=phase,
            chat_id=chat_id,
            data=data or {},
            **kwargs
        )

    def log_tool_execution(
        self,
        tool_name: str,
        chat_id: Optional[str],
        input_data: Dict[str, Any],
        output_data: Optional[Any] = None,
        duration_ms: Optional[float] = None,
        success: bool = True,
        error: Optional[str] = None
    ):
        """Log tool execution events"""

        self.logger.info(
            "tool_execution",
            tool_name=tool_name,
            chat_id=chat_id,
            input_data=input_data,
            output_data=output_data,
            duration_ms=duration_ms,
            success=success,
            error=error
        )

    def log_workflow_transition(
        self,
        chat_id: str,
        from_node: str,
        to_node: str,
        condition: Optional[str] = None,
        state_summary: Optional[Dict[str, Any]] = None
    ):
        """Log workflow state transitions"""

        self.logger.info(
            "workflow_transition",
            chat_id=chat_id,
            from_node=from_node,
            to_node=to_node,
            condition=condition,
            state_summary=state_summary or {}
        )

    def log_decision(
        self,
        service: str,
        attempts: int,
        decision: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None
    ):
        """Log a model-backed decision and how many attempts it took"""

        log = self.logger.warning if error else self.logger.info
        log(
            "decision",
            service=service,
            attempts=attempts,
            decision=decision or {},
            error=error
        )


# Global logger instance
agent_logger = AgentLogger("agent")
