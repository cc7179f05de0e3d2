"""Pagination primitives shared by list endpoints."""
import math
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class PaginationParams(BaseModel):
    """Validated page/limit pair."""

    page: int = Field(default=DEFAULT_PAGE, ge=1)
    limit: int = Field(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PageMeta(BaseModel):
    """Pagination block returned with every list response."""

    current_page: int
    total_pages: int
    total_count: int
    limit: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, params: PaginationParams, total_count: int) -> "PageMeta":
        total_pages = math.ceil(total_count / params.limit) if total_count else 0
        return cls(
            current_page=params.page,
            total_pages=total_pages,
            total_count=total_count,
            limit=params.limit,
            has_next_page=params.page < total_pages,
            has_prev_page=params.page > 1,
        )


@dataclass
class Page(Generic[T]):
    """A slice of results plus its pagination metadata."""

    items: list[T]
    meta: PageMeta
