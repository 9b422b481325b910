# clinic_api/pagination.py

import math
from typing import Generic, List, Optional, TypeVar

from fastapi import Query
from pydantic import BaseModel
from sqlalchemy import func
from sqlmodel import Session, select

T = TypeVar("T")


class PageParams(BaseModel):
    page: int = 1
    limit: int = 10

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> PageParams:
    return PageParams(page=page, limit=limit)


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total_items: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool
    next_page: Optional[int] = None
    prev_page: Optional[int] = None


class Page(BaseModel, Generic[T]):
    items: List[T]
    pagination: PaginationMeta


def make_meta(total_items: int, page: int, limit: int) -> PaginationMeta:
    total_pages = math.ceil(total_items / limit)
    return PaginationMeta(
        page=page,
        limit=limit,
        total_items=total_items,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
        next_page=page + 1 if page < total_pages else None,
        prev_page=page - 1 if page > 1 else None,
    )


def paginate(session: Session, stmt, params: PageParams):
    """Run ``stmt`` for one page; returns (rows, PaginationMeta)."""
    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    rows = session.exec(stmt.offset(params.offset).limit(params.limit)).all()
    return rows, make_meta(total, params.page, params.limit)
