"""
Musga - Vocals API Router

Upload, discovery, preview streaming and owner edits for vocal tracks.
"""
import logging
import os
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, Request, UploadFile, status
from sqlalchemy.orm import Session

from ..auth import get_current_account, require_singer
from ..config import ASSET_PROCESSING_INLINE, DEFAULT_PAGE_SIZE
from ..database import get_db, get_session_factory
from ..errors import Forbidden, MarketplaceError, NotFound
from ..models.db_models import AccountDB, AssetJobStatus, Genre, LicensingType
from ..services.asset_pipeline import AssetJobRunner, run_asset_job_in_background
from ..services.catalog import CatalogService, TrackFilters, can_mutate_track
from ..services.uploads import remove_quietly, store_upload
from .common import CamelModel, MessageResponse, PaginatedResponse, TrackResponse, paginated, ranged_file_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vocals", tags=["vocals"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class UpdateTrackRequest(CamelModel):
    """Partial edit - omitted fields are left alone."""
    title: Optional[str] = None
    description: Optional[str] = None
    genre: Optional[Genre] = None
    bpm: Optional[int] = None
    key: Optional[str] = None
    tone: Optional[str] = None
    price: Optional[Decimal] = None
    licensing_type: Optional[LicensingType] = None


class AssetJobResponse(CamelModel):
    id: str
    track_id: str
    status: AssetJobStatus
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/upload", response_model=TrackResponse, status_code=status.HTTP_201_CREATED)
def upload_vocal(
    background_tasks: BackgroundTasks,
    audio: Optional[UploadFile] = File(None),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    genre: Optional[str] = Form(None),
    bpm: Optional[int] = Form(None),
    key: Optional[str] = Form(None),
    tone: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    licensing_type: Optional[str] = Form(None, alias="licensingType"),
    current_account: AccountDB = Depends(require_singer),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    """
    Upload a master file with its metadata.

    Duration and preview are derived by an asset job; the track joins the
    public catalog once that job is done.
    """
    stored = None
    if audio is not None and audio.filename:
        stored = store_upload(audio.file, audio.filename, audio.content_type)

    metadata = {
        "title": title,
        "description": description,
        "genre": genre,
        "bpm": bpm,
        "key": key,
        "tone": tone,
        "price": price,
        "licensing_type": licensing_type,
    }
    try:
        track, job = CatalogService(db).upload(
            current_account, metadata, stored, process_inline=ASSET_PROCESSING_INLINE
        )
    except MarketplaceError:
        if stored is not None:
            remove_quietly(stored.path)
        raise

    if job.status == AssetJobStatus.QUEUED:
        background_tasks.add_task(run_asset_job_in_background, job.id, session_factory)

    return TrackResponse.model_validate(track)


@router.get("", response_model=PaginatedResponse[TrackResponse])
async def search_vocals(
    genre: Optional[Genre] = Query(None),
    min_price: Optional[Decimal] = Query(None, alias="minPrice"),
    max_price: Optional[Decimal] = Query(None, alias="maxPrice"),
    min_bpm: Optional[int] = Query(None, alias="minBpm"),
    max_bpm: Optional[int] = Query(None, alias="maxBpm"),
    key: Optional[str] = Query(None),
    licensing_type: Optional[LicensingType] = Query(None, alias="licensingType"),
    search: Optional[str] = Query(None),
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    """
    Browse the public catalog. Every filter is optional; price and bpm ranges are inclusive.
    """
    filters = TrackFilters(
        genre=genre,
        min_price=min_price,
        max_price=max_price,
        min_bpm=min_bpm,
        max_bpm=max_bpm,
        key=key,
        licensing_type=licensing_type,
        search=search,
    )
    result = CatalogService(db).search(filters, page, limit)
    return paginated(result, TrackResponse)


@router.get("/my-vocals", response_model=PaginatedResponse[TrackResponse])
async def get_my_vocals(
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    current_account: AccountDB = Depends(require_singer),
    db: Session = Depends(get_db),
):
    """
    The caller's own active tracks, sold or not.
    """
    result = CatalogService(db).list_by_owner(current_account.id, page, limit)
    return paginated(result, TrackResponse)


@router.get("/{vocal_id}", response_model=TrackResponse)
async def get_vocal(vocal_id: str, db: Session = Depends(get_db)):
    """
    Fetch one track. Each call counts as a view.
    """
    track = CatalogService(db).get_by_id(vocal_id)
    return TrackResponse.model_validate(track)


@router.get("/{vocal_id}/preview")
def stream_preview(vocal_id: str, request: Request, db: Session = Depends(get_db)):
    """
    Stream the 30-second preview. Supports byte ranges for seeking.
    """
    track = CatalogService(db).peek(vocal_id)
    if not track.preview_path or not os.path.exists(track.preview_path):
        raise NotFound("Preview not found")
    return ranged_file_response(request, track.preview_path)


@router.get("/{vocal_id}/processing", response_model=AssetJobResponse)
async def get_processing_status(
    vocal_id: str,
    current_account: AccountDB = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    """
    Latest asset job for one of the caller's tracks.
    """
    track = CatalogService(db).peek(vocal_id)
    if not can_mutate_track(current_account, track):
        raise Forbidden("You can only inspect your own vocals")

    job = AssetJobRunner(db).latest_for_track(track.id)
    if job is None:
        raise NotFound("No processing job for this vocal")
    return AssetJobResponse.model_validate(job)


@router.patch("/{vocal_id}", response_model=TrackResponse)
async def update_vocal(
    vocal_id: str,
    request: UpdateTrackRequest,
    current_account: AccountDB = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    """
    Edit an unsold track. Owner only.
    """
    patch = request.model_dump(exclude_unset=True)
    track = CatalogService(db).update(vocal_id, patch, current_account)
    return TrackResponse.model_validate(track)


@router.delete("/{vocal_id}", response_model=MessageResponse)
async def delete_vocal(
    vocal_id: str,
    current_account: AccountDB = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    """
    Retire an unsold track. Owner only.
    """
    CatalogService(db).retire(vocal_id, current_account)
    return MessageResponse(message="Vocal deleted successfully")
