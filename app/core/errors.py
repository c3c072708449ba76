from fastapi import status
from typing import Any, Dict, Iterable, List, Mapping, Optional


class AppError(Exception):
    """Operational error that is safe to show to the API caller."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Something went wrong. Please try again later."

    def __init__(
        self,
        message: Optional[str] = None,
        errors: Optional[List[Dict[str, str]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message or self.message
        self.errors = errors
        self.headers = headers
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Validation failed"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Resource not found"


class PayloadTooLargeError(AppError):
    status_code = status.HTTP_413_CONTENT_TOO_LARGE
    message = "Request body is too large"


class RateLimitError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Too many requests from this IP, please try again later."


def _field_name(loc: Iterable[Any]) -> str:
    # ("body", "message") -> "message", ("query", "page") -> "page"
    names = [part for part in loc if isinstance(part, str)]
    return names[-1] if names else "request"


def collect_field_errors(
    errors: Iterable[Mapping[str, Any]],
    required_messages: Optional[Mapping[str, str]] = None,
) -> List[Dict[str, str]]:
    """Flatten pydantic errors into ``[{"field", "message"}]``, one per field."""
    required_messages = required_messages or {}
    collected: List[Dict[str, str]] = []
    seen = set()

    for error in errors:
        field = _field_name(error.get("loc", ()))
        if field in seen:
            continue
        seen.add(field)

        error_type = error.get("type")
        if error_type == "missing":
            message = required_messages.get(field, f"{field} is required")
        elif error_type == "value_error" and error.get("ctx", {}).get("error") is not None:
            message = str(error["ctx"]["error"])
        else:
            message = error.get("msg", "Invalid value")

        collected.append({"field": field, "message": message})

    return collected
