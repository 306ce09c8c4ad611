"""
Asset Pipeline

Derives a track's duration and a 30-second MP3 preview from its master file
with ffprobe and ffmpeg (the latter via ffmpeg-python). Work is tracked as AssetJobDB
records so it can run outside the upload request:

    QUEUED -> RUNNING -> DONE | FAILED

Every external process runs with a timeout.
"""
import json
import logging
import os
import subprocess
from datetime import datetime
from typing import Optional
from uuid import uuid4

import ffmpeg
from sqlalchemy.orm import Session

from ..config import (
    FFPROBE_BIN, FFMPEG_BIN, ASSET_PROCESS_TIMEOUT_SECONDS,
    PREVIEW_DIRNAME, PREVIEW_PREFIX, PREVIEW_SECONDS, PREVIEW_BITRATE, PREVIEW_SAMPLE_RATE,
)
from ..errors import NotFound, ProcessingFailed
from ..models.db_models import AssetJobDB, AssetJobStatus, ProcessingStatus, TrackDB

logger = logging.getLogger(__name__)


# =============================================================================
# EXTERNAL TOOLS
# =============================================================================

def _last_line(stderr, fallback: str) -> str:
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    lines = (stderr or "").strip().splitlines()
    return lines[-1] if lines else fallback


def probe_duration(file_path: str, timeout: float = ASSET_PROCESS_TIMEOUT_SECONDS) -> int:
    """
    Return the audio duration of `file_path` in whole seconds.

    ffprobe is invoked directly since ffmpeg.probe has no process timeout;
    subprocess.run kills the child when `timeout` expires.
    """
    command = [FFPROBE_BIN, "-v", "error", "-show_format", "-of", "json", file_path]
    try:
        result = subprocess.run(command, capture_output=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        raise ProcessingFailed(f"Duration probe timed out after {timeout:g}s")
    except OSError as e:
        raise ProcessingFailed(f"Duration probe could not be started: {e}")

    if result.returncode != 0:
        detail = _last_line(result.stderr, f"exit code {result.returncode}")
        raise ProcessingFailed(f"Duration probe failed: {detail}")

    try:
        info = json.loads(result.stdout)
    except ValueError:
        raise ProcessingFailed("Duration probe returned unparseable output")
    if not isinstance(info, dict):
        raise ProcessingFailed("Duration probe returned unparseable output")

    raw = (info.get("format") or {}).get("duration")
    try:
        seconds = float(raw)
    except (TypeError, ValueError):
        raise ProcessingFailed(f"Duration probe returned unparseable output: {raw!r}")
    if seconds < 0:
        raise ProcessingFailed(f"Duration probe returned a negative duration: {seconds}")
    return int(round(seconds))


def preview_path_for(file_path: str, output_dir: Optional[str] = None) -> str:
    """previews/preview-<stored name> next to the master, unless output_dir is given."""
    output_dir = output_dir or os.path.join(os.path.dirname(file_path), PREVIEW_DIRNAME)
    return os.path.join(output_dir, PREVIEW_PREFIX + os.path.basename(file_path))


def extract_preview(
    file_path: str,
    output_dir: Optional[str] = None,
    timeout: float = ASSET_PROCESS_TIMEOUT_SECONDS,
) -> str:
    """Write the first 30 seconds of `file_path` as a 128k/44.1kHz MP3 and return its path."""
    preview_path = preview_path_for(file_path, output_dir)
    os.makedirs(os.path.dirname(preview_path), exist_ok=True)

    stream = ffmpeg.input(file_path)
    stream = ffmpeg.output(
        stream,
        preview_path,
        t=PREVIEW_SECONDS,
        acodec="mp3",
        ab=PREVIEW_BITRATE,
        ar=PREVIEW_SAMPLE_RATE,
    )
    try:
        process = ffmpeg.run_async(
            stream, cmd=FFMPEG_BIN, pipe_stdout=True, pipe_stderr=True, overwrite_output=True
        )
    except OSError as e:
        raise ProcessingFailed(f"Preview extraction could not be started: {e}")

    try:
        _, stderr = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        process.kill()
        process.communicate()
        raise ProcessingFailed(f"Preview extraction timed out after {timeout:g}s")

    if process.returncode != 0:
        detail = _last_line(stderr, f"exit code {process.returncode}")
        raise ProcessingFailed(f"Preview extraction failed: {detail}")
    return preview_path


# =============================================================================
# JOBS
# =============================================================================

class AssetJobRunner:
    """Creates and executes asset jobs against a database session."""

    def __init__(self, db: Session, timeout: float = ASSET_PROCESS_TIMEOUT_SECONDS):
        self.db = db
        self.timeout = timeout

    def submit(self, track: TrackDB) -> AssetJobDB:
        """Queue processing for `track`. Flushes, does not commit."""
        job = AssetJobDB(
            id=str(uuid4()),
            track_id=track.id,
            status=AssetJobStatus.QUEUED,
            created_at=datetime.utcnow(),
        )
        track.processing_status = ProcessingStatus.PROCESSING
        self.db.add(job)
        self.db.flush()
        return job

    def run(self, job_id: str) -> AssetJobDB:
        """
        Execute a queued job and commit its outcome.

        Failures are recorded on the job and the track (processing_status=failed)
        rather than raised; callers that need to propagate them inspect the
        returned job.
        """
        job = self.db.query(AssetJobDB).filter(AssetJobDB.id == job_id).first()
        if job is None:
            raise NotFound("Asset job not found")
        if job.status != AssetJobStatus.QUEUED:
            logger.info(f"Asset job {job.id} already {job.status.value}, skipping")
            return job

        track = job.track
        job.status = AssetJobStatus.RUNNING
        job.started_at = datetime.utcnow()
        self.db.commit()
        logger.info(f"Asset job {job.id} started for track {track.id}")

        try:
            duration = probe_duration(track.file_path, timeout=self.timeout)
            preview_path = extract_preview(track.file_path, timeout=self.timeout)
        except ProcessingFailed as e:
            logger.warning(f"Asset job {job.id} failed for track {track.id}: {e.message}")
            return self._fail(job, track, e.message)
        except Exception as e:
            # A RUNNING job must still reach a terminal state
            logger.exception(f"Asset job {job.id} crashed for track {track.id}")
            return self._fail(job, track, f"Audio processing error: {type(e).__name__}")

        track.duration = duration
        track.preview_path = preview_path
        track.processing_status = ProcessingStatus.READY
        job.status = AssetJobStatus.DONE
        job.finished_at = datetime.utcnow()
        self.db.commit()

        logger.info(f"Asset job {job.id} done: track {track.id} duration={duration}s")
        return job

    def _fail(self, job: AssetJobDB, track: TrackDB, message: str) -> AssetJobDB:
        job.status = AssetJobStatus.FAILED
        job.error_message = message
        job.finished_at = datetime.utcnow()
        track.processing_status = ProcessingStatus.FAILED
        self.db.commit()
        return job

    def latest_for_track(self, track_id: str) -> Optional[AssetJobDB]:
        return self.db.query(AssetJobDB).filter(
            AssetJobDB.track_id == track_id
        ).order_by(AssetJobDB.created_at.desc()).first()


def run_asset_job_in_background(job_id: str, session_factory=None) -> None:
    """Background task entry point; owns its own session."""
    if session_factory is None:
        from ..database import SessionLocal as session_factory

    db = session_factory()
    try:
        AssetJobRunner(db).run(job_id)
    except Exception:
        db.rollback()
        logger.exception(f"Asset job {job_id} crashed")
    finally:
        db.close()
