from typing import Dict, List, Any, Callable, Optional
import time
import structlog

from domain.events.event_dispatcher import InternalEventDispatcher
from domain.events.events import EventType, ToolExecutionEventPayload
from domain.tool.tool_executor import ToolDefinition, ToolExecutor, ToolResult
from domain.tool.tool_validator import ToolParameterValidator
from infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)


class ToolRegistry:
    """Registry for the tools the agent may call.

    ``execute_tool`` is the boundary used by the graph: it never raises,
    every failure (unknown tool, bad parameters, handler exception,
    timeout) comes back as an unsuccessful ToolResult.
    """

    def __init__(
        self,
        dispatcher: Optional[InternalEventDispatcher] = None,
        executor: Optional[ToolExecutor] = None,
    ):
        self.tools: Dict[str, ToolDefinition] = {}
        self.tool_categories: Dict[str, List[str]] = {}
        self.dispatcher = dispatcher
        self.executor = executor or ToolExecutor()

    def register_tool(
        self,
        name: str,
        handler: Callable[..., Any],
        description: str = "",
        category: str = "general",
        parameters_model: Optional[type] = None,
        timeout_seconds: Optional[float] = None,
        **metadata: Any,
    ) -> ToolDefinition:
        """Register a new tool, replacing any tool with the same name"""

        if not name:
            raise ValueError("Tool name must not be empty")

        if name in self.tools:
            self.unregister_tool(name)

        tool = ToolDefinition(
            name=name,
            handler=handler,
            description=description,
            category=category,
            parameters_model=parameters_model,
            timeout_seconds=timeout_seconds,
            metadata=metadata,
        )
        self.tools[name] = tool

        if category not in self.tool_categories:
            self.tool_categories[category] = []
        self.tool_categories[category].append(name)

        logger.debug("Tool registered", tool=name, category=category)
        return tool

    def tool(self, name: str, **options: Any) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator form of register_tool"""

        def decorator(handler: Callable[..., Any]) -> Callable[..., Any]:
            options.setdefault("description", (handler.__doc__ or "").strip())
            self.register_tool(name, handler, **options)
            return handler

        return decorator

    def unregister_tool(self, name: str):
        tool = self.tools.pop(name, None)
        if tool is not None:
            names = self.tool_categories.get(tool.category, [])
            if name in names:
                names.remove(name)

    def tool_names(self) -> List[str]:
        return list(self.tools.keys())

    def get_available_tools(self) -> List[Dict[str, Any]]:
        """Get all available tools"""

        return [self._describe(tool) for tool in self.tools.values()]

    def get_tool_info(self, name: str) -> Optional[Dict[str, Any]]:
        """Get information about a specific tool"""

        tool = self.tools.get(name)
        return self._describe(tool) if tool else None

    def get_tools_by_category(self, category: str) -> List[Dict[str, Any]]:
        """Get tools by category"""

        names = self.tool_categories.get(category, [])
        return [self._describe(self.tools[name]) for name in names if name in self.tools]

    def search_tools(self, query: str) -> List[Dict[str, Any]]:
        """Search tools by name or description"""

        query_lower = query.lower()
        matching_tools = []

        for tool in self.tools.values():
            if query_lower in tool.name.lower() or query_lower in tool.description.lower():
                matching_tools.append(self._describe(tool))

        return matching_tools

    async def execute_tool(
        self,
        name: str,
        parameters: Any,
        context: Optional[Dict[str, Any]] = None,
    ) -> ToolResult:
        """Validate and run a tool. Never raises."""

        context = dict(context or {})
        chat_id = context.get("chat_id")
        raw_parameters = parameters if isinstance(parameters, dict) else {}
        started = time.monotonic()

        self._publish(EventType.TOOL_EXECUTION_STARTED, name, raw_parameters, chat_id)

        tool = self.tools.get(name)
        if tool is None:
            result = ToolResult(success=False, error=f"Tool not found: {name}")
        else:
            validation = ToolParameterValidator.validate_tool_call(tool.parameters_model, parameters)
            if not validation.is_valid:
                result = ToolResult(
                    success=False,
                    error=f"Invalid parameters for {name}: {'; '.join(validation.errors)}",
                )
            else:
                result = await self.executor.execute_tool(tool, validation.data, context)

        duration_ms = (time.monotonic() - started) * 1000
        if not result.execution_time_ms:
            result.execution_time_ms = duration_ms

        agent_logger.log_tool_execution(
            tool_name=name,
            chat_id=chat_id,
            input_data=raw_parameters,
            output_data=result.data if result.success else None,
            duration_ms=duration_ms,
            success=result.success,
            error=result.error,
        )

        if result.success:
            self._publish(EventType.TOOL_EXECUTION_COMPLETED, name, raw_parameters, chat_id,
                          duration_ms=duration_ms, result=result.data)
        else:
            self._publish(EventType.TOOL_EXECUTION_ERROR, name, raw_parameters, chat_id,
                          duration_ms=duration_ms, error=result.error)

        return result

    def _publish(self, event_type: EventType, name: str, parameters: Dict[str, Any],
                 chat_id: Optional[str], **fields: Any):
        if self.dispatcher is None:
            return
        self.dispatcher.publish(event_type, ToolExecutionEventPayload(
            tool_name=name,
            parameters=parameters,
            chat_id=chat_id,
            source="ToolRegistry",
            **fields,
        ))

    @staticmethod
    def _describe(tool: ToolDefinition) -> Dict[str, Any]:
        return {
            "id": tool.name,
            "name": tool.name,
            "description": tool.description,
            "category": tool.category,
            "parameters": tool.parameters_schema(),
        }
