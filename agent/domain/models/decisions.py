from typing import Dict, Any, List, Optional, Literal
from pydantic import BaseModel, Field, model_validator


class PlannerDecision(BaseModel):
    """Plan update produced by the planning service"""
    thought: str = Field(description="Reasoning behind the plan update")
    plan: List[str] = Field(default_factory=list, description="Remaining tasks, in order")
    is_plan_complete: bool = Field(description="True when the user's request is fully answered")
    next_task: Optional[str] = Field(None, description="Task to execute next")
    final_answer: Optional[str] = Field(None, description="Answer for the user once the plan is complete")


class ToolCallDecision(BaseModel):
    """Tool call chosen by the executor service for one task"""
    thought: str
    tool: str = Field(min_length=1)
    parameters: Dict[str, Any] = Field(default_factory=dict)


class CorrectionDecision(BaseModel):
    """Recovery strategy chosen by the error-correction service"""
    thought: str
    decision: Literal["retry", "modify_plan", "continue"]
    new_plan: Optional[List[str]] = None

    @model_validator(mode="after")
    def _require_plan_for_modify(self) -> "CorrectionDecision":
        if self.decision == "modify_plan" and not self.new_plan:
            raise ValueError("new_plan must be a non-empty list when decision is 'modify_plan'")
        return self


class ValidationDecision(BaseModel):
    """Verdict on a failed tool step"""
    is_valid: bool
    reasoning: str
    correction_suggestion: Optional[str] = None
    updated_plan: Optional[List[str]] = None
