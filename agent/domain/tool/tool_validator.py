# Parameter validation
from typing import Dict, Any, List, Optional

from pydantic import BaseModel, Field, ValidationError


class ValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    data: Dict[str, Any] = Field(default_factory=dict)


class ToolParameterValidator:
    @staticmethod
    def validate_tool_call(parameters_model: Optional[type], parameters: Any) -> ValidationResult:
        if not isinstance(parameters, dict):
            return ValidationResult(is_valid=False, errors=["Parameters must be an object"])

        if parameters_model is None:
            return ValidationResult(is_valid=True, data=dict(parameters))

        try:
            validated = parameters_model.model_validate(parameters)
            return ValidationResult(is_valid=True, data=validated.model_dump())

        except ValidationError as e:
            errors = [
                f"{'.'.join(str(part) for part in err['loc']) or 'parameters'}: {err['msg']}"
                for err in e.errors()
            ]
            return ValidationResult(is_valid=False, errors=errors)
