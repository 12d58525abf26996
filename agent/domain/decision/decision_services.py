from domain.context.context_builder import (
    PlannerContext,
    ExecutorContext,
    ErrorHandlerContext,
    ValidationContext,
)
from domain.decision.base_decision_service import StructuredDecisionService, format_plan
from domain.decision.prompts import (
    PLANNER_PROMPT,
    EXECUTOR_PROMPT,
    ERROR_CORRECTION_PROMPT,
    VALIDATION_PROMPT,
)
from domain.models.decisions import (
    PlannerDecision,
    ToolCallDecision,
    CorrectionDecision,
    ValidationDecision,
)


class PlannerService(StructuredDecisionService[PlannerDecision]):
    name = "planner"
    schema = PlannerDecision
    prompt = PLANNER_PROMPT

    async def decide(self, context: PlannerContext) -> PlannerDecision:
        return await self._decide({
            "user_query": context.user_query,
            "current_plan": format_plan(context.current_plan),
            "chat_history": context.chat_history or "(none)",
            "execution_history": context.execution_history,
            "working_memory": context.working_memory or "(empty)",
            "retrieved_memory": context.retrieved_memory or "(none)",
        }, context)

    def check_decision(self, decision: PlannerDecision, context: PlannerContext):
        if not decision.is_plan_complete and not decision.next_task:
            raise ValueError("next_task is required while the plan is not complete")


class ExecutorService(StructuredDecisionService[ToolCallDecision]):
    name = "executor"
    schema = ToolCallDecision
    prompt = EXECUTOR_PROMPT

    async def decide(self, context: ExecutorContext) -> ToolCallDecision:
        return await self._decide({
            "user_query": context.user_query,
            "task": context.task,
            "tool_descriptions": context.tool_descriptions or "(no tools registered)",
            "working_memory": context.working_memory or "(empty)",
        }, context)

    def check_decision(self, decision: ToolCallDecision, context: ExecutorContext):
        available = context.available_tools
        if available and decision.tool not in available:
            raise ValueError(
                f"Unknown tool '{decision.tool}'. Choose one of: {', '.join(available)}"
            )


class ErrorCorrectionService(StructuredDecisionService[CorrectionDecision]):
    name = "error_correction"
    schema = CorrectionDecision
    prompt = ERROR_CORRECTION_PROMPT

    async def decide(self, context: ErrorHandlerContext) -> CorrectionDecision:
        return await self._decide({
            "user_query": context.user_query,
            "current_plan": format_plan(context.current_plan),
            "failed_task": context.failed_task,
            "error_details": context.error_details,
            "execution_history": context.execution_history,
        })


class ValidationService(StructuredDecisionService[ValidationDecision]):
    name = "validation"
    schema = ValidationDecision
    prompt = VALIDATION_PROMPT

    async def decide(self, context: ValidationContext) -> ValidationDecision:
        return await self._decide({
            "user_query": context.user_query,
            "current_plan": format_plan(context.current_plan),
            "last_tool": context.last_tool,
            "tool_input": context.tool_input,
            "tool_output": context.tool_output,
            "error": context.error,
            "working_memory": context.working_memory or "(empty)",
        })
