#!/usr/bin/env python3
"""
Demo Data Seed Script
Creates sample singer and DJ accounts plus a few catalog entries.

Usage:
    python -m scripts.seed_demo [password]

Example:
    python -m scripts.seed_demo password123

Existing accounts (matched by email or username) are left untouched, and
tracks are only created for singers this run created.
"""
import sys
import os
from decimal import Decimal
from uuid import uuid4

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session
from musga.database import SessionLocal, init_db
from musga.models.db_models import (
    AccountDB, TrackDB, UserRole, Genre, LicensingType, ProcessingStatus
)
from musga.auth import hash_password

DEMO_ACCOUNTS = [
    {
        "email": "singer1@musga.com",
        "username": "vocalist_pro",
        "first_name": "Sarah",
        "last_name": "Johnson",
        "role": UserRole.SINGER,
        "bio": "Professional vocalist with 5+ years experience in electronic music",
    },
    {
        "email": "singer2@musga.com",
        "username": "melody_master",
        "first_name": "Alex",
        "last_name": "Thompson",
        "role": UserRole.SINGER,
        "bio": "Emerging artist passionate about house and techno vocals",
    },
    {
        "email": "dj1@musga.com",
        "username": "beat_producer",
        "first_name": "Mike",
        "last_name": "Davis",
        "role": UserRole.DJ,
        "bio": "Electronic music producer specializing in deep house and techno",
    },
    {
        "email": "dj2@musga.com",
        "username": "sound_architect",
        "first_name": "Emma",
        "last_name": "Wilson",
        "role": UserRole.DJ,
        "bio": "EDM producer and DJ with releases on major labels",
    },
]

# Keyed by the owning singer's username
DEMO_TRACKS = {
    "vocalist_pro": [
        dict(title="Deep House Vibes", description="Smooth and soulful vocals perfect for deep house tracks",
             genre=Genre.DEEP_HOUSE, bpm=120, key="Am", tone="Smooth", duration=180,
             price=Decimal("15.99"), licensing_type=LicensingType.NON_EXCLUSIVE,
             file_path="/samples/deep-house-vibes.mp3", file_size=5242880),
        dict(title="Techno Energy", description="High-energy vocals for peak-time techno tracks",
             genre=Genre.TECHNO, bpm=128, key="Em", tone="Energetic", duration=240,
             price=Decimal("18.99"), licensing_type=LicensingType.EXCLUSIVE,
             file_path="/samples/techno-energy.mp3", file_size=6291456),
    ],
    "melody_master": [
        dict(title="Trance Euphoria", description="Uplifting vocals that create euphoric moments",
             genre=Genre.TRANCE, bpm=132, key="C", tone="Uplifting", duration=300,
             price=Decimal("22.99"), licensing_type=LicensingType.NON_EXCLUSIVE,
             file_path="/samples/trance-euphoria.mp3", file_size=7340032),
    ],
}


def seed_demo_data(password: str) -> int:
    """Create missing demo accounts and their tracks. Returns how many accounts were created."""
    init_db()

    db: Session = SessionLocal()
    created = 0
    try:
        for demo in DEMO_ACCOUNTS:
            existing = db.query(AccountDB).filter(
                (AccountDB.email == demo["email"]) | (AccountDB.username == demo["username"])
            ).first()
            if existing:
                print(f"Skipping '{demo['email']}': already exists.")
                continue

            account = AccountDB(
                id=str(uuid4()),
                password_hash=hash_password(password),
                is_active=True,
                is_verified=True,
                **demo,
            )
            db.add(account)
            created += 1

            for track in DEMO_TRACKS.get(demo["username"], []):
                preview = os.path.join(
                    os.path.dirname(track["file_path"]), "previews", "preview-" + os.path.basename(track["file_path"])
                )
                db.add(TrackDB(
                    id=str(uuid4()),
                    singer_id=account.id,
                    preview_path=preview,
                    processing_status=ProcessingStatus.READY,
                    is_exclusive=track["licensing_type"] == LicensingType.EXCLUSIVE,
                    is_sold=False,
                    is_active=True,
                    **track,
                ))

            print(f"Created {demo['role'].value} '{demo['username']}' ({demo['email']})")

        db.commit()
        print(f"Demo data seeded: {created} new account(s).")
        return created

    except Exception as e:
        print(f"Error seeding demo data: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def main():
    if len(sys.argv) > 2:
        print(__doc__)
        sys.exit(1)

    password = sys.argv[1] if len(sys.argv) == 2 else "password123"

    # Basic validation
    if len(password) < 8:
        print("Error: Password must be at least 8 characters.")
        sys.exit(1)

    seed_demo_data(password)
    sys.exit(0)


if __name__ == "__main__":
    main()
