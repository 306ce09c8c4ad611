"""
Shared API models and helpers.

Wire format is camelCase to match the web client; Python attributes stay snake_case.
"""
import os
import re
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Generic, Iterator, List, Optional, TypeVar

from fastapi import Request
from fastapi.responses import Response, StreamingResponse
from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

from ..models.db_models import Genre, LicensingType, ProcessingStatus, UserRole
from ..services.pagination import Page

T = TypeVar("T")

# Prices travel as JSON numbers
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

STREAM_CHUNK_SIZE = 64 * 1024
_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(CamelModel):
    message: str


class PaginatedResponse(CamelModel, Generic[T]):
    data: List[T]
    total: int
    page: int
    limit: int
    total_pages: int


def paginated(page: Page, item_model) -> dict:
    """Page -> PaginatedResponse payload."""
    return {
        "data": [item_model.model_validate(item) for item in page.items],
        "total": page.total,
        "page": page.page,
        "limit": page.page_size,
        "total_pages": page.total_pages,
    }


# =============================================================================
# SHARED RESPONSE MODELS
# =============================================================================

class AccountResponse(CamelModel):
    """Account without its credential."""
    id: str
    email: str
    username: str
    first_name: str
    last_name: str
    role: UserRole
    profile_picture: Optional[str] = None
    bio: Optional[str] = None
    is_active: bool
    is_verified: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SingerSummary(CamelModel):
    id: str
    username: str
    first_name: str
    last_name: str


class TrackResponse(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    genre: Genre
    bpm: int
    key: str
    tone: str
    duration: int
    price: Money
    licensing_type: LicensingType
    file_size: int
    processing_status: ProcessingStatus
    singer_id: str
    singer: Optional[SingerSummary] = None
    is_exclusive: bool
    is_sold: bool
    is_active: bool
    view_count: int
    download_count: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =============================================================================
# BYTE-RANGE STREAMING
# =============================================================================

class RangeNotSatisfiable(Exception):
    pass


def parse_range(header: Optional[str], file_size: int):
    """
    Parse a single `bytes=start-end` range. Returns (start, end) inclusive,
    or None when the header is absent or not a byte range we serve.
    """
    if not header:
        return None
    match = _RANGE_RE.match(header.strip())
    if not match:
        return None
    start_s, end_s = match.groups()
    if not start_s and not end_s:
        return None

    if not start_s:
        # Suffix range: last N bytes
        length = int(end_s)
        if length == 0:
            raise RangeNotSatisfiable()
        start, end = max(file_size - length, 0), file_size - 1
    else:
        start = int(start_s)
        end = int(end_s) if end_s else file_size - 1
        end = min(end, file_size - 1)

    if start >= file_size or start > end:
        raise RangeNotSatisfiable()
    return start, end


def _iter_file(path: str, start: int, length: int) -> Iterator[bytes]:
    with open(path, "rb") as f:
        f.seek(start)
        remaining = length
        while remaining > 0:
            chunk = f.read(min(STREAM_CHUNK_SIZE, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk


def ranged_file_response(request: Request, path: str, media_type: str = "audio/mpeg") -> Response:
    """Stream `path`, honouring a Range header with 206 Partial Content."""
    file_size = os.path.getsize(path)
    try:
        byte_range = parse_range(request.headers.get("range"), file_size)
    except RangeNotSatisfiable:
        return Response(status_code=416, headers={"Content-Range": f"bytes */{file_size}"})

    if byte_range is None:
        return StreamingResponse(
            _iter_file(path, 0, file_size),
            media_type=media_type,
            headers={"Content-Length": str(file_size), "Accept-Ranges": "bytes"},
        )

    start, end = byte_range
    length = end - start + 1
    return StreamingResponse(
        _iter_file(path, start, length),
        status_code=206,
        media_type=media_type,
        headers={
            "Content-Range": f"bytes {start}-{end}/{file_size}",
            "Accept-Ranges": "bytes",
            "Content-Length": str(length),
        },
    )
