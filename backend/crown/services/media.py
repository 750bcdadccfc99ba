from __future__ import annotations
from PIL import Image, UnidentifiedImageError
import io
import uuid

from crown.errors import InvalidUpload

ALLOWED_IMAGE_MIME = {"image/jpeg", "image/png", "image/webp", "image/gif"}
EXT_FOR_MIME = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp", "image/gif": "gif",
                "video/mp4": "mp4", "video/quicktime": "mov", "video/webm": "webm"}
FORMAT_MIME = {"JPEG": "image/jpeg", "PNG": "image/png", "WEBP": "image/webp", "GIF": "image/gif"}
ALLOWED_VIDEO_MIME = {"video/mp4", "video/quicktime", "video/webm"}

MAX_IMAGE_BYTES = 5 * 1024 * 1024
MAX_VIDEO_BYTES = 200 * 1024 * 1024

def sniff_mime(data: bytes) -> str | None:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return FORMAT_MIME.get(img.format or "")
    except Exception:
        return None

def validate_image(data: bytes, max_bytes: int = MAX_IMAGE_BYTES) -> str:
    """Returns the detected mime type; raises InvalidUpload otherwise."""
    if not data:
        raise InvalidUpload("Empty file")
    if len(data) > max_bytes:
        raise InvalidUpload(f"File size must be less than {max_bytes // (1024 * 1024)}MB")
    mime = sniff_mime(data)
    if mime not in ALLOWED_IMAGE_MIME:
        raise InvalidUpload("Only image files are allowed")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()  # basic integrity
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise InvalidUpload("Invalid image file")
    return mime

def validate_video(data: bytes, content_type: str | None, max_bytes: int = MAX_VIDEO_BYTES) -> str:
    if not data:
        raise InvalidUpload("Empty file")
    if len(data) > max_bytes:
        raise InvalidUpload(f"File size must be less than {max_bytes // (1024 * 1024)}MB")
    if content_type not in ALLOWED_VIDEO_MIME:
        raise InvalidUpload("Only MP4, MOV or WebM videos are allowed")
    return content_type

def ext_for_mime(mime: str) -> str:
    return EXT_FOR_MIME.get(mime, "bin")

def object_key(prefix: str, mime: str) -> str:
    return f"{prefix}/{uuid.uuid4().hex}.{ext_for_mime(mime)}"
