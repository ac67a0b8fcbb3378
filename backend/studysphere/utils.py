# backend/studysphere/utils.py
import logging
import os
import uuid
from typing import Tuple

from fastapi import UploadFile

from .errors import ApiError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


def format_file_size(size: int) -> str:
    return f"{size / (1024 * 1024):.1f} MB"


async def save_upload(upload: UploadFile, upload_dir: str, max_bytes: int) -> Tuple[str, int]:
    """
    Stream an uploaded file into upload_dir under a random name.
    Returns (path, size). Raises FILE_TOO_LARGE past max_bytes; the partial
    file is removed on any failure.
    """
    os.makedirs(upload_dir, exist_ok=True)
    suffix = os.path.splitext(upload.filename or "")[1]
    path = os.path.join(upload_dir, uuid.uuid4().hex + suffix)
    size = 0
    try:
        with open(path, "wb") as out:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > max_bytes:
                    raise ApiError(
                        413,
                        f"File exceeds the {format_file_size(max_bytes)} limit",
                        "FILE_TOO_LARGE",
                        maxBytes=max_bytes,
                    )
                out.write(chunk)
    except Exception:
        try:
            os.remove(path)
        except OSError:
            logger.warning("Could not remove partial upload %s", path)
        raise
    return path, size
