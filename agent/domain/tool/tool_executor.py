# Execution with timeouts & failure capture
import asyncio
import functools
import inspect
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Any, Callable, Optional

from pydantic import BaseModel


class ToolResult(BaseModel):
    """Outcome of one tool call; failures are data, never exceptions"""
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    execution_time_ms: float = 0.0


@dataclass
class ToolDefinition:
    """A registered tool and how to call it"""
    name: str
    handler: Callable[..., Any]
    description: str = ""
    category: str = "general"
    parameters_model: Optional[type] = None
    timeout_seconds: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def parameters_schema(self) -> Dict[str, Any]:
        if self.parameters_model is None:
            return {}
        return self.parameters_model.model_json_schema()


class ToolExecutor:
    """Runs tool handlers: coroutines on the loop, plain callables on a thread pool"""

    def __init__(self, default_timeout: float = 60.0, max_workers: int = 10):
        self.default_timeout = default_timeout
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="tool")

    async def execute_tool(
        self,
        tool: ToolDefinition,
        parameters: Dict[str, Any],
        context: Dict[str, Any],
    ) -> ToolResult:
        timeout = tool.timeout_seconds or self.default_timeout
        started = time.monotonic()

        try:
            data = await asyncio.wait_for(self._invoke(tool, parameters, context), timeout=timeout)
            return ToolResult(
                success=True,
                data=data,
                execution_time_ms=(time.monotonic() - started) * 1000,
            )

        except asyncio.TimeoutError:
            return ToolResult(
                success=False,
                error=f"Tool execution timeout after {timeout}s",
                execution_time_ms=(time.monotonic() - started) * 1000,
            )
        except Exception as e:
            return ToolResult(
                success=False,
                error=str(e) or type(e).__name__,
                execution_time_ms=(time.monotonic() - started) * 1000,
            )

    async def _invoke(self, tool: ToolDefinition, parameters: Dict[str, Any], context: Dict[str, Any]):
        if inspect.iscoroutinefunction(tool.handler):
            return await tool.handler(parameters, context)

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(
            self._pool, functools.partial(tool.handler, parameters, context)
        )
        if inspect.isawaitable(result):
            result = await result
        return result

    def shutdown(self):
        self._pool.shutdown(wait=False)
