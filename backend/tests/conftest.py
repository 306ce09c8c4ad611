"""
Shared fixtures: in-memory database, deterministic payment gateway,
account/track factories and an HTTP client wired to both.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import json
import subprocess
from contextlib import contextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch
from uuid import uuid4

import ffmpeg
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from musga.database import Base, get_db, get_session_factory
from musga.main import app
from musga.models.db_models import (
    Genre, LicensingType, ProcessingStatus, TrackDB, UserRole,
)
from musga.services.identity import IdentityService
from musga.services.payment_gateway import SimulatedPaymentGateway, get_payment_gateway


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    """Gateway that succeeds unless a test says otherwise."""
    return SimulatedPaymentGateway()


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture
def make_account(db):
    """Register an account through the identity service; returns AuthResult."""
    counter = {"n": 0}

    def _make(role=UserRole.DJ, first_name="Test", last_name="User", password="password123", **kwargs):
        counter["n"] += 1
        n = counter["n"]
        return IdentityService(db).register(
            email=kwargs.pop("email", f"user{n}@musga.test"),
            username=kwargs.pop("username", f"user{n}"),
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=role,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_track(db, tmp_path):
    """Insert a processed, listed track with real master and preview files on disk."""
    base_time = datetime(2024, 1, 1, 12, 0, 0)
    counter = {"n": 0}

    def _make(owner, **overrides):
        counter["n"] += 1
        n = counter["n"]
        master = tmp_path / f"audio-{n}.mp3"
        master.write_bytes(b"MASTER" * 100)
        preview_dir = tmp_path / "previews"
        preview_dir.mkdir(exist_ok=True)
        preview = preview_dir / f"preview-audio-{n}.mp3"
        preview.write_bytes(bytes(range(256)) * 4)

        licensing = overrides.pop("licensing_type", LicensingType.NON_EXCLUSIVE)
        fields = dict(
            id=str(uuid4()),
            title=f"Track {n}",
            description="Soulful topline",
            genre=Genre.DEEP_HOUSE,
            bpm=120,
            key="Am",
            tone="Smooth",
            duration=180,
            price=Decimal("20.00"),
            licensing_type=licensing,
            is_exclusive=licensing == LicensingType.EXCLUSIVE,
            file_path=str(master),
            preview_path=str(preview),
            file_size=600,
            processing_status=ProcessingStatus.READY,
            singer_id=owner.id,
            is_sold=False,
            is_active=True,
            view_count=0,
            download_count=0,
            created_at=base_time + timedelta(minutes=n),
        )
        fields.update(overrides)
        track = TrackDB(**fields)
        db.add(track)
        db.commit()
        db.refresh(track)
        return track

    return _make


# =============================================================================
# EXTERNAL TOOLS
# =============================================================================

PROBE = "musga.services.asset_pipeline.subprocess.run"
RUN_ASYNC = "musga.services.asset_pipeline.ffmpeg.run_async"


def ffprobe_result(stdout=b"", returncode=0, stderr=b""):
    """CompletedProcess as subprocess.run returns it for ffprobe."""
    return subprocess.CompletedProcess([], returncode, stdout=stdout, stderr=stderr)


def finished_process(returncode=0, stderr=b""):
    """Popen stand-in as returned by ffmpeg.run_async."""
    process = MagicMock()
    process.communicate.return_value = (b"", stderr)
    process.returncode = returncode
    return process


@contextmanager
def fake_ffmpeg(duration="42.4"):
    """ffprobe reports `duration`; ffmpeg writes a small preview file to its output path."""
    def _run_async(stream, **kwargs):
        output_path = ffmpeg.compile(stream)[-1]
        with open(output_path, "wb") as f:
            f.write(b"ID3" + b"\x00" * 512)
        return finished_process()

    probe_json = json.dumps({"format": {"duration": duration}}).encode()
    with patch(PROBE, return_value=ffprobe_result(probe_json)) as probe, \
            patch(RUN_ASYNC, side_effect=_run_async) as run_async:
        yield probe, run_async


def fake_binary(directory, name, body):
    """Executable shell script standing in for an external tool."""
    path = directory / name
    path.write_text("#!/bin/sh\n" + body + "\n")
    path.chmod(0o755)
    return str(path)


# =============================================================================
# HTTP
# =============================================================================

@pytest.fixture
def client(session_factory, gateway, tmp_path, monkeypatch):
    """TestClient bound to the test database, gateway and upload directory."""
    monkeypatch.setattr("musga.services.uploads.UPLOAD_ROOT", str(tmp_path / "uploads"))

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
