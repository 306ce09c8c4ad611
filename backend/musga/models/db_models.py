"""
Musga - SQLAlchemy ORM Models
Accounts, vocal tracks, license transactions and asset processing jobs
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, Text, ForeignKey, Enum as SQLEnum, Boolean, Index
)
from sqlalchemy.orm import relationship
from ..database import Base


# =============================================================================
# ENUMS
# =============================================================================

class UserRole(str, Enum):
    """The two fixed marketplace roles."""
    SINGER = "singer"
    DJ = "dj"


class LicensingType(str, Enum):
    """Exclusive permits one sale ever; non-exclusive permits unlimited sales."""
    EXCLUSIVE = "exclusive"
    NON_EXCLUSIVE = "non_exclusive"


class Genre(str, Enum):
    HOUSE = "house"
    TECHNO = "techno"
    TRANCE = "trance"
    DUBSTEP = "dubstep"
    DRUM_AND_BASS = "drum_and_bass"
    ELECTRONIC = "electronic"
    DEEP_HOUSE = "deep_house"
    PROGRESSIVE = "progressive"
    AMBIENT = "ambient"
    DOWNTEMPO = "downtempo"


class TransactionStatus(str, Enum):
    """
    LicenseTransaction lifecycle.

    PENDING -> COMPLETED | FAILED. REFUNDED exists on the record but no
    operation transitions into it.
    """
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class ProcessingStatus(str, Enum):
    """Whether a track's duration and preview have been derived yet."""
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class AssetJobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# =============================================================================
# IDENTITY
# =============================================================================

class AccountDB(Base):
    """Marketplace account. Email and username are globally unique."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # UUID
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    role = Column(
        SQLEnum(UserRole, values_callable=_enum_values, name="user_role"),
        nullable=False,
        default=UserRole.SINGER,
    )
    profile_picture = Column(String(500), nullable=True)
    bio = Column(Text, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    is_verified = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    tracks = relationship("TrackDB", back_populates="singer")


# =============================================================================
# CATALOG
# =============================================================================

class TrackDB(Base):
    """An uploaded vocal track with its sale metadata."""
    __tablename__ = "vocals"

    id = Column(String(36), primary_key=True)  # UUID
    title = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    genre = Column(SQLEnum(Genre, values_callable=_enum_values, name="genre"), nullable=False, index=True)
    bpm = Column(Integer, nullable=False, index=True)  # 60-200 by convention
    key = Column(String(20), nullable=False)
    tone = Column(String(100), nullable=False)
    duration = Column(Integer, nullable=False, default=0)  # seconds, derived from the file

    price = Column(Numeric(10, 2), nullable=False, index=True)
    licensing_type = Column(
        SQLEnum(LicensingType, values_callable=_enum_values, name="licensing_type"),
        nullable=False,
        index=True,
    )

    file_path = Column(String(500), nullable=False)
    preview_path = Column(String(500), nullable=True)
    file_size = Column(Integer, nullable=False, default=0)  # bytes
    processing_status = Column(
        SQLEnum(ProcessingStatus, values_callable=_enum_values, name="processing_status"),
        nullable=False,
        default=ProcessingStatus.PROCESSING,
    )

    singer_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    is_exclusive = Column(Boolean, nullable=False, default=False, index=True)
    is_sold = Column(Boolean, nullable=False, default=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    view_count = Column(Integer, nullable=False, default=0)
    download_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    singer = relationship("AccountDB", back_populates="tracks")
    asset_jobs = relationship("AssetJobDB", back_populates="track", order_by="AssetJobDB.created_at")


class AssetJobDB(Base):
    """
    Derives duration and preview for one uploaded master file.
    QUEUED -> RUNNING -> DONE | FAILED
    """
    __tablename__ = "asset_jobs"

    id = Column(String(36), primary_key=True)  # UUID
    track_id = Column(String(36), ForeignKey("vocals.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(
        SQLEnum(AssetJobStatus, values_callable=_enum_values, name="asset_job_status"),
        nullable=False,
        default=AssetJobStatus.QUEUED,
    )
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)

    track = relationship("TrackDB", back_populates="asset_jobs")


# =============================================================================
# LEDGER
# =============================================================================

class LicenseTransactionDB(Base):
    """
    One purchase of a license.

    amount, platform_fee and seller_amount are fixed at creation;
    amount == platform_fee + seller_amount.
    licensing_type is a snapshot of the track's mode at checkout.
    """
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True)  # UUID
    vocal_id = Column(String(36), ForeignKey("vocals.id"), nullable=False, index=True)
    buyer_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    seller_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    amount = Column(Numeric(10, 2), nullable=False)
    platform_fee = Column(Numeric(10, 2), nullable=False)
    seller_amount = Column(Numeric(10, 2), nullable=False)

    gateway_ref = Column(String(255), nullable=False, unique=True, index=True)
    licensing_type = Column(
        SQLEnum(LicensingType, values_callable=_enum_values, name="licensing_type"),
        nullable=False,
    )

    status = Column(
        SQLEnum(TransactionStatus, values_callable=_enum_values, name="transaction_status"),
        nullable=False,
        default=TransactionStatus.PENDING,
        index=True,
    )
    failure_reason = Column(String(255), nullable=True)
    refund_id = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    vocal = relationship("TrackDB")
    buyer = relationship("AccountDB", foreign_keys=[buyer_id])
    seller = relationship("AccountDB", foreign_keys=[seller_id])

    __table_args__ = (
        Index("ix_transactions_vocal_buyer_status", "vocal_id", "buyer_id", "status"),
    )
