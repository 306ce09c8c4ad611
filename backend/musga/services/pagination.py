"""Shared paging rules for catalog and ledger listings."""
import math
from dataclasses import dataclass, field
from typing import Generic, List, TypeVar

from ..config import MAX_PAGE_SIZE
from ..errors import InvalidArgument

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    items: List[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20

    @property
    def total_pages(self) -> int:
        return total_pages(self.total, self.page_size)


def total_pages(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if page_size else 0


def validate_paging(page: int, page_size: int) -> None:
    if page is None or page < 1:
        raise InvalidArgument("Invalid page number")
    if page_size is None or page_size < 1 or page_size > MAX_PAGE_SIZE:
        raise InvalidArgument(f"Invalid limit (1-{MAX_PAGE_SIZE})")


def paginate(query, page: int, page_size: int) -> Page:
    """Run `query` (already filtered and ordered) for one page plus its total count."""
    validate_paging(page, page_size)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return Page(items=items, total=total, page=page, page_size=page_size)
