from typing import Any, TypeVar, get_args

from pydantic import BaseModel, ValidationError
from pydantic_core.core_schema import ErrorType

from bizdesk.schemas.action_schemas import ActionError

ModelT = TypeVar("ModelT", bound=BaseModel)

# Every code the input validator can emit; business errors never reuse these
VALIDATION_ERROR_CODES = frozenset(get_args(ErrorType))


def errors_from_validation(exc: ValidationError) -> list[ActionError]:
    """Flatten pydantic errors into ``{field, message, code}`` entries."""
    errors = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        errors.append(
            ActionError(
                field=location or "general",
                message=error.get("msg", "Invalid value"),
                code=error.get("type", "invalid"),
            )
        )
    return errors


def validate_input(schema: type[ModelT], raw: Any) -> tuple[ModelT | None, list[ActionError]]:
    """
    Run the input validator.

    Returns:
        (data, []) on success, (None, field_errors) on failure
    """
    try:
        return schema.model_validate(raw if raw is not None else {}), []
    except ValidationError as exc:
        return None, errors_from_validation(exc)


def is_validation_failure(errors: list[ActionError]) -> bool:
    """True when every error came from input validation"""
    return bool(errors) and all(error.code in VALIDATION_ERROR_CODES for error in errors)
