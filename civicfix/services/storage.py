"""
CivicFix
Object storage for report images.

Files live under ``UPLOAD_FOLDER`` in two prefixes:
    hazards/{epoch_ms}-{random}.{ext}        - citizen submissions
    proofs/proof-{epoch_ms}-{random}.{ext}   - proof-of-resolution photos

The stored extension always follows the format Pillow detects in the bytes,
never the client file name.

Public URLs are ``{PUBLIC_BASE_URL}/uploads/{path}`` and are served by the
``/uploads/<path>`` route registered in the app factory.
"""

import io
import logging
import os
import secrets
import string
import time
from dataclasses import dataclass

from flask import current_app
from PIL import Image

from civicfix.core.exceptions import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)

HAZARD_PREFIX = "hazards"
PROOF_PREFIX = "proofs"

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}

# Pillow format name -> stored MIME type
_FORMAT_MIME = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}

_BASE36 = string.digits + string.ascii_lowercase


@dataclass
class StoredImage:
    path: str
    url: str
    data: bytes
    mime_type: str


def detect_image_type(data):
    """MIME type of the image encoded in ``data``, or None if it is not one we store."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
            img.verify()
    except (OSError, SyntaxError, ValueError) as exc:
        logger.info("Upload is not a readable image: %s", exc)
        return None
    return _FORMAT_MIME.get(fmt)


def _object_name(ext, prefix=""):
    rand = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{prefix}{int(time.time() * 1000)}-{rand}.{ext}"


def public_url(path):
    base = (current_app.config.get("PUBLIC_BASE_URL") or "").rstrip("/")
    return f"{base}/uploads/{path}"


def read_upload(file_storage):
    """Validate an uploaded ``FileStorage`` and return ``(bytes, mime_type)``."""
    if file_storage is None or not file_storage.filename:
        raise ValidationError("An image file is required", details={"image": "missing"})

    mime_type = (file_storage.mimetype or "").lower()
    if mime_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(
            "Only image uploads are accepted",
            details={"image": f"unsupported type {mime_type or 'unknown'}"},
        )

    data = file_storage.read()
    if not data:
        raise ValidationError("Uploaded image is empty", details={"image": "empty"})
    max_bytes = current_app.config.get("UPLOAD_MAX_BYTES", 10 * 1024 * 1024)
    if len(data) > max_bytes:
        raise ValidationError(
            "Uploaded image is too large",
            details={"image": f"max {max_bytes} bytes"},
        )

    # The declared type is only a hint; the bytes decide what gets stored
    detected = detect_image_type(data)
    if detected is None:
        raise ValidationError(
            "Uploaded file is not a valid image",
            details={"image": f"content does not match {mime_type}"},
        )
    if detected != mime_type:
        logger.info("Upload declared %s but contains %s", mime_type, detected)
    return data, detected


def save_image(file_storage, *, proof=False) -> StoredImage:
    """Persist an uploaded image and return its storage path and public URL."""
    data, mime_type = read_upload(file_storage)
    ext = ALLOWED_IMAGE_TYPES[mime_type]

    folder = PROOF_PREFIX if proof else HAZARD_PREFIX
    name = _object_name(ext, prefix="proof-" if proof else "")
    rel_path = f"{folder}/{name}"

    root = current_app.config["UPLOAD_FOLDER"]
    target_dir = os.path.join(root, folder)
    try:
        os.makedirs(target_dir, exist_ok=True)
        with open(os.path.join(target_dir, name), "xb") as fh:
            fh.write(data)
    except OSError as exc:
        logger.exception("Failed to store upload %s", rel_path)
        raise ExternalServiceError("storage", f"Failed to upload file: {exc}") from exc

    logger.info("Stored %s (%d bytes, %s)", rel_path, len(data), mime_type)
    return StoredImage(path=rel_path, url=public_url(rel_path), data=data, mime_type=mime_type)
