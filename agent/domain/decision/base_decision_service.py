import json
from abc import ABC, abstractmethod
from typing import Dict, Any, Generic, Type, TypeVar

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.utils.json import parse_json_markdown
from pydantic import BaseModel

from domain.decision.prompts import REPAIR_PROMPT
from domain.orchestration.core.errors import DecisionServiceError
from infrastructure.observability.logging import agent_logger

DecisionT = TypeVar("DecisionT", bound=BaseModel)


def message_text(message: Any) -> str:
    """Plain text of a chat model reply, whatever shape its content has"""

    content = message.content if isinstance(message, BaseMessage) else message
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text", ""))
        return "".join(parts)
    return str(content)


def parse_decision(text: str, schema: Type[DecisionT]) -> DecisionT:
    """Parse bare or fenced JSON into ``schema``; raises ValueError on mismatch"""

    data = parse_json_markdown(text, parser=json.loads)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return schema.model_validate(data)


class StructuredDecisionService(ABC, Generic[DecisionT]):
    """Model-backed decision with bounded self-repair.

    A reply that fails to parse or validate is sent back to the model
    together with the error and the schema, at most
    ``max_repair_attempts`` times. The service either returns a
    schema-valid decision or raises DecisionServiceError.
    """

    name: str = "decision"
    schema: Type[DecisionT]
    prompt: ChatPromptTemplate

    def __init__(self, model: BaseChatModel, max_repair_attempts: int = 2):
        self.model = model
        self.max_repair_attempts = max_repair_attempts

    @abstractmethod
    async def decide(self, context: Any) -> DecisionT:
        """Map a structured context to a decision"""

    def check_decision(self, decision: DecisionT, context: Any):
        """Extra contract checks beyond the schema; raise ValueError to trigger repair"""

    async def _decide(self, variables: Dict[str, Any], context: Any = None) -> DecisionT:
        text = await self._complete(self.prompt, variables)
        attempts = 0
        last_error: Exception = ValueError("no response")

        while True:
            attempts += 1
            try:
                decision = parse_decision(text, self.schema)
                self.check_decision(decision, context)
                agent_logger.log_decision(self.name, attempts, decision.model_dump())
                return decision
            except (ValueError, TypeError) as e:
                last_error = e

            if attempts > self.max_repair_attempts:
                break
            text = await self._complete(REPAIR_PROMPT, {
                "error": str(last_error),
                "schema": json.dumps(self.schema.model_json_schema()),
                "original": text,
            })

        agent_logger.log_decision(self.name, attempts, error=str(last_error))
        raise DecisionServiceError(self.name, str(last_error), attempts)

    async def _complete(self, prompt: ChatPromptTemplate, variables: Dict[str, Any]) -> str:
        try:
            reply = await (prompt | self.model).ainvoke(variables)
        except Exception as e:
            raise DecisionServiceError(self.name, f"model call failed: {e}") from e
        return message_text(reply)


def format_plan(plan: Any) -> str:
    if not plan:
        return "(empty)"
    return "\n".join(f"{index}. {task}" for index, task in enumerate(plan, start=1))
