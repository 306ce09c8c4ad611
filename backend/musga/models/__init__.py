"""Musga - Data Models"""
from .db_models import (
    # Enums
    UserRole, LicensingType, Genre, TransactionStatus, ProcessingStatus, AssetJobStatus,
    # Tables
    AccountDB, TrackDB, AssetJobDB, LicenseTransactionDB,
)

__all__ = [
    "UserRole", "LicensingType", "Genre", "TransactionStatus", "ProcessingStatus", "AssetJobStatus",
    "AccountDB", "TrackDB", "AssetJobDB", "LicenseTransactionDB",
]
