"""
Catalog Service

Track lifecycle (upload, edit, retire) and discovery (search, owner listings).
The public catalog only ever shows active, unsold, fully processed tracks.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from ..errors import Forbidden, InvalidArgument, InvalidState, NotFound, ProcessingFailed
from ..models.db_models import (
    AccountDB, AssetJobDB, AssetJobStatus, Genre, LicenseTransactionDB, LicensingType,
    ProcessingStatus, TrackDB, TransactionStatus, UserRole,
)
from .asset_pipeline import AssetJobRunner
from .pagination import Page, paginate
from .uploads import StoredFile, remove_quietly

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "description", "genre", "bpm", "key", "tone", "price", "licensing_type")


@dataclass
class TrackFilters:
    """Optional search constraints; None means unconstrained. Ranges are inclusive."""
    genre: Optional[Genre] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    min_bpm: Optional[int] = None
    max_bpm: Optional[int] = None
    key: Optional[str] = None
    licensing_type: Optional[LicensingType] = None
    search: Optional[str] = None


def can_mutate_track(account: Optional[AccountDB], track: TrackDB) -> bool:
    """Only the owning singer may edit or retire a track."""
    if account is None or not account.is_active:
        return False
    return account.role == UserRole.SINGER and account.id == track.singer_id


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class CatalogService:

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # UPLOAD
    # =========================================================================

    def upload(
        self,
        owner: AccountDB,
        metadata: Dict[str, Any],
        audio_file: Optional[StoredFile],
        process_inline: bool = False,
    ) -> Tuple[TrackDB, AssetJobDB]:
        """
        Create a track for an uploaded master file and queue its asset job.

        With process_inline the job runs before returning and a processing
        failure retires the track, removes its files and raises ProcessingFailed.
        Otherwise the caller is responsible for running the returned job.
        """
        if owner.role != UserRole.SINGER:
            raise Forbidden("Only singers can upload vocals")
        if audio_file is None:
            raise InvalidArgument("Audio file is required")

        fields = self._clean_metadata(metadata, required=True)

        track = TrackDB(
            id=str(uuid4()),
            singer_id=owner.id,
            file_path=audio_file.path,
            preview_path=None,
            file_size=audio_file.size,
            duration=0,
            is_exclusive=fields["licensing_type"] == LicensingType.EXCLUSIVE,
            is_sold=False,
            is_active=True,
            view_count=0,
            download_count=0,
            created_at=datetime.utcnow(),
            **fields,
        )
        self.db.add(track)
        self.db.flush()

        runner = AssetJobRunner(self.db)
        job = runner.submit(track)
        self.db.commit()
        logger.info(f"Track {track.id} uploaded by {owner.email}: {track.title!r}")

        if process_inline:
            job = runner.run(job.id)
            if job.status == AssetJobStatus.FAILED:
                track.is_active = False
                self.db.commit()
                remove_quietly(track.file_path)
                remove_quietly(track.preview_path)
                raise ProcessingFailed(job.error_message or "Audio processing failed")
            self.db.refresh(track)

        return track, job

    # =========================================================================
    # DISCOVERY
    # =========================================================================

    def search(self, filters: Optional[TrackFilters], page: int = 1, page_size: int = 20) -> Page:
        """Active, unsold, processed tracks matching every supplied filter, newest first."""
        filters = filters or TrackFilters()

        query = self.db.query(TrackDB).join(AccountDB, TrackDB.singer_id == AccountDB.id).filter(
            TrackDB.is_active.is_(True),
            TrackDB.is_sold.is_(False),
            TrackDB.processing_status == ProcessingStatus.READY,
        )

        if filters.genre is not None:
            try:
                genre = Genre(filters.genre)
            except ValueError:
                raise InvalidArgument(f"Invalid genre: {filters.genre}")
            query = query.filter(TrackDB.genre == genre)
        if filters.min_price is not None:
            query = query.filter(TrackDB.price >= filters.min_price)
        if filters.max_price is not None:
            query = query.filter(TrackDB.price <= filters.max_price)
        if filters.min_bpm is not None:
            query = query.filter(TrackDB.bpm >= filters.min_bpm)
        if filters.max_bpm is not None:
            query = query.filter(TrackDB.bpm <= filters.max_bpm)
        if filters.key:
            query = query.filter(TrackDB.key == filters.key)
        if filters.licensing_type is not None:
            try:
                licensing_type = LicensingType(filters.licensing_type)
            except ValueError:
                raise InvalidArgument(f"Invalid licensing type: {filters.licensing_type}")
            query = query.filter(TrackDB.licensing_type == licensing_type)
        if filters.search and filters.search.strip():
            pattern = f"%{_escape_like(filters.search.strip())}%"
            query = query.filter(or_(
                TrackDB.title.ilike(pattern, escape="\\"),
                TrackDB.description.ilike(pattern, escape="\\"),
                AccountDB.first_name.ilike(pattern, escape="\\"),
                AccountDB.last_name.ilike(pattern, escape="\\"),
            ))

        query = query.order_by(TrackDB.created_at.desc(), TrackDB.id.desc())
        return paginate(query, page, page_size)

    def get_by_id(self, track_id: str) -> TrackDB:
        """Fetch an active track and count the view."""
        track = self._get_active(track_id)

        self.db.execute(
            update(TrackDB)
            .where(TrackDB.id == track_id)
            .values(view_count=TrackDB.view_count + 1)
        )
        self.db.commit()
        self.db.refresh(track)
        return track

    def peek(self, track_id: str) -> TrackDB:
        """Fetch an active track without counting a view."""
        return self._get_active(track_id)

    def list_by_owner(self, owner_id: str, page: int = 1, page_size: int = 20) -> Page:
        """The owner's active tracks in any sale or processing state, newest first."""
        query = self.db.query(TrackDB).filter(
            TrackDB.singer_id == owner_id,
            TrackDB.is_active.is_(True),
        ).order_by(TrackDB.created_at.desc(), TrackDB.id.desc())
        return paginate(query, page, page_size)

    # =========================================================================
    # MUTATION
    # =========================================================================

    def update(self, track_id: str, patch: Dict[str, Any], requester: AccountDB) -> TrackDB:
        """Apply a partial edit. Sold tracks are frozen."""
        track = self._get_mutable(track_id, requester, action="update")

        fields = self._clean_metadata(patch, required=False)
        if not fields:
            return track

        new_mode = fields.get("licensing_type")
        if (
            new_mode == LicensingType.EXCLUSIVE
            and track.licensing_type != LicensingType.EXCLUSIVE
            and self._has_open_or_completed_sales(track.id)
        ):
            raise InvalidState("Cannot make a vocal exclusive while it has pending or completed sales")

        for name, value in fields.items():
            setattr(track, name, value)
        if new_mode is not None:
            track.is_exclusive = new_mode == LicensingType.EXCLUSIVE

        self.db.commit()
        self.db.refresh(track)

        logger.info(f"Track {track.id} updated by {requester.email}: {sorted(fields)}")
        return track

    def retire(self, track_id: str, requester: AccountDB) -> TrackDB:
        """Soft delete: hide the track and try to remove its files."""
        track = self._get_mutable(track_id, requester, action="delete")

        track.is_active = False
        self.db.commit()
        logger.info(f"Track {track.id} retired by {requester.email}")

        remove_quietly(track.file_path)
        remove_quietly(track.preview_path)
        return track

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _get_active(self, track_id: str) -> TrackDB:
        track = self.db.query(TrackDB).filter(
            TrackDB.id == track_id,
            TrackDB.is_active.is_(True),
        ).first()
        if track is None:
            raise NotFound("Vocal not found")
        return track

    def _get_mutable(self, track_id: str, requester: AccountDB, action: str) -> TrackDB:
        track = self.db.query(TrackDB).filter(TrackDB.id == track_id).first()
        # Retired tracks are gone; sold ones stay visible to their owner as InvalidState
        if track is None or (not track.is_active and not track.is_sold):
            raise NotFound("Vocal not found")
        if not can_mutate_track(requester, track):
            raise Forbidden(f"You can only {action} your own vocals")
        if track.is_sold:
            raise InvalidState(f"Cannot {action} sold vocals")
        return track

    def _has_open_or_completed_sales(self, track_id: str) -> bool:
        return self.db.query(LicenseTransactionDB.id).filter(
            LicenseTransactionDB.vocal_id == track_id,
            LicenseTransactionDB.status.in_([TransactionStatus.PENDING, TransactionStatus.COMPLETED]),
        ).first() is not None

    @staticmethod
    def _clean_metadata(data: Dict[str, Any], required: bool) -> Dict[str, Any]:
        """Validate user-editable track fields. Unknown keys are ignored."""
        data = {k: v for k, v in (data or {}).items() if k in EDITABLE_FIELDS and v is not None}

        if required:
            missing = [name for name in EDITABLE_FIELDS if name != "description" and name not in data]
            if missing:
                raise InvalidArgument(f"Missing required fields: {', '.join(missing)}")

        cleaned: Dict[str, Any] = {}
        for name, value in data.items():
            if name in ("title", "key", "tone"):
                value = str(value).strip()
                if not value:
                    raise InvalidArgument(f"{name} cannot be empty")
            elif name == "genre":
                try:
                    value = Genre(value)
                except ValueError:
                    raise InvalidArgument(f"Invalid genre: {value}")
            elif name == "licensing_type":
                try:
                    value = LicensingType(value)
                except ValueError:
                    raise InvalidArgument(f"Invalid licensing type: {value}")
            elif name == "bpm":
                try:
                    value = int(value)
                except (TypeError, ValueError):
                    raise InvalidArgument("bpm must be an integer")
                if value <= 0:
                    raise InvalidArgument("bpm must be positive")
            elif name == "price":
                try:
                    value = Decimal(str(value))
                except InvalidOperation:
                    raise InvalidArgument("price must be a number")
                if not value.is_finite():
                    raise InvalidArgument("price must be a number")
                value = value.quantize(Decimal("0.01"))
                if value <= 0:
                    raise InvalidArgument("price must be greater than zero")
            cleaned[name] = value
        return cleaned
