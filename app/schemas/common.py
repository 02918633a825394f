"""Response envelopes and pagination shared by every endpoint."""

import math
from typing import Generic, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """Success wrapper: {"data": ...}."""
    data: T


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_count: int
    page_size: int

    @classmethod
    def build(cls, page: int, page_size: int, total_count: int) -> "Pagination":
        total_pages = math.ceil(total_count / page_size) if page_size else 1
        return cls(
            current_page=page,
            total_pages=max(total_pages, 1),
            total_count=total_count,
            page_size=page_size,
        )


class DeletedOut(BaseModel):
    id: str
    deleted: bool = True
