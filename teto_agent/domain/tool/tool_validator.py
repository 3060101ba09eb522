from typing import Dict, Any, List
from pydantic import BaseModel, Field
import jsonschema


class ValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)


# Parameter validation against a tool's JSON schema
class ToolParameterValidator:
    @staticmethod
    def validate_tool_call(schema: Dict[str, Any], parameters: Any) -> ValidationResult:
        if not isinstance(parameters, dict):
            return ValidationResult(
                is_valid=False,
                errors=[f"Arguments must be a JSON object, got {type(parameters).__name__}"]
            )

        try:
            jsonschema.validate(parameters, schema)
            return ValidationResult(is_valid=True)

        except jsonschema.ValidationError as e:
            return ValidationResult(is_valid=False, errors=[f"Schema validation failed: {e.message}"])
