"""
Upload Storage

Writes uploaded master files under UPLOAD_ROOT as
audio-<epoch ms>-<random><ext>, enforcing type and size limits.
"""
import logging
import os
import secrets
import time
from dataclasses import dataclass
from typing import BinaryIO, Optional

from ..config import UPLOAD_ROOT, MAX_UPLOAD_BYTES
from ..errors import InvalidArgument

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "audio/mpeg",
    "audio/mp3",
    "audio/wav",
    "audio/wave",
    "audio/x-wav",
    "audio/flac",
    "audio/x-flac",
}

CHUNK_SIZE = 1024 * 1024


@dataclass
class StoredFile:
    """A master file persisted on disk."""
    path: str
    filename: str
    original_filename: str
    content_type: str
    size: int


def _stored_name(original_filename: str) -> str:
    ext = os.path.splitext(original_filename or "")[1].lower()
    return f"audio-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"


def store_upload(
    stream: BinaryIO,
    original_filename: str,
    content_type: Optional[str],
    upload_root: Optional[str] = None,
    max_bytes: Optional[int] = None,
) -> StoredFile:
    """Copy `stream` into the upload root. Partial files are removed on rejection."""
    upload_root = upload_root or UPLOAD_ROOT
    max_bytes = max_bytes or MAX_UPLOAD_BYTES

    if content_type not in ALLOWED_MIME_TYPES:
        raise InvalidArgument("Invalid file type. Only audio files are allowed.")

    os.makedirs(upload_root, exist_ok=True)
    filename = _stored_name(original_filename)
    path = os.path.join(upload_root, filename)

    size = 0
    try:
        with open(path, "wb") as out:
            while True:
                chunk = stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > max_bytes:
                    raise InvalidArgument(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB")
                out.write(chunk)
    except InvalidArgument:
        remove_quietly(path)
        raise

    if size == 0:
        remove_quietly(path)
        raise InvalidArgument("Audio file is empty")

    logger.info(f"Stored upload {original_filename!r} as {path} ({size} bytes)")
    return StoredFile(
        path=path,
        filename=filename,
        original_filename=original_filename,
        content_type=content_type,
        size=size,
    )


def remove_quietly(path: Optional[str]) -> bool:
    """Best-effort delete. Failures are logged, never raised."""
    if not path:
        return False
    try:
        if os.path.exists(path):
            os.remove(path)
            return True
    except OSError as e:
        logger.warning(f"Could not delete file {path}: {e}")
    return False
