from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Schemas are snake_case in Python and camelCase on the wire; both spellings are accepted on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(CamelModel, Generic[T]):
    """Success envelope: {"success": true, "message"?: str, "data": ...}."""

    success: bool = True
    message: Optional[str] = None
    data: T


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total: int
    limit: int
    has_next_page: bool
    has_prev_page: bool
