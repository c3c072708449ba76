from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Literal, Optional
import math


class ErrorDetail(BaseModel):
    field: str
    message: str


class Pagination(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(
            current_page=page,
            total_pages=math.ceil(total / limit),
            total_items=total,
            items_per_page=limit,
        )

    def to_api(self) -> Dict[str, int]:
        return self.model_dump(by_alias=True)


class StandardResponse(BaseModel):
    status: Literal["success", "error"] = "success"
    message: Optional[str] = None
    results: Optional[int] = None
    data: Optional[Any] = None
    errors: Optional[List[ErrorDetail]] = None
    pagination: Optional[Dict[str, int]] = None


def error_body(message: str, errors: Optional[List[Dict[str, str]]] = None) -> Dict[str, Any]:
    return StandardResponse(status="error", message=message, errors=errors).model_dump(exclude_none=True)
