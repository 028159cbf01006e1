from __future__ import annotations

import logging
import secrets
import time
from pathlib import Path

from fastapi import UploadFile

from eventflow.core.config import settings
from eventflow.core.errors import InvalidImage

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {"jpeg", "jpg", "png", "gif", "webp"}
PUBLIC_PREFIX = "/uploads"
_CHUNK = 64 * 1024


def upload_dir() -> Path:
    path = Path(settings.UPLOAD_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


def validate_image(filename: str | None, content_type: str | None) -> str:
    """
    Returns the normalized extension. Both the extension and the declared
    content type must name an allowed image format.
    """
    name = (filename or "").strip()
    ext = name.rsplit(".", 1)[-1].lower() if "." in name else ""
    if ext not in ALLOWED_EXTENSIONS:
        raise InvalidImage()

    ctype = (content_type or "").strip().lower()
    if not ctype.startswith("image/") or ctype.split("/", 1)[1] not in ALLOWED_EXTENSIONS:
        raise InvalidImage()
    return ext


def save_image(upload: UploadFile) -> str:
    """
    Persist an uploaded image under UPLOAD_DIR and return its public URL path.
    """
    ext = validate_image(upload.filename, upload.content_type)
    name = f"image-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}.{ext}"
    target = upload_dir() / name

    max_bytes = int(settings.MAX_UPLOAD_BYTES)
    written = 0
    try:
        with target.open("wb") as out:
            while True:
                chunk = upload.file.read(_CHUNK)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise InvalidImage(f"Image exceeds {max_bytes} bytes")
                out.write(chunk)
    except InvalidImage:
        target.unlink(missing_ok=True)
        raise

    logger.info("Stored event image %s (%d bytes)", name, written)
    return f"{PUBLIC_PREFIX}/{name}"


def delete_image(image_url: str | None) -> None:
    if not image_url or not image_url.startswith(f"{PUBLIC_PREFIX}/"):
        return
    name = image_url[len(PUBLIC_PREFIX) + 1:]
    if not name or "/" in name or name.startswith("."):
        return
    (upload_dir() / name).unlink(missing_ok=True)
