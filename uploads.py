import logging
import os
import uuid

from fastapi import UploadFile

import config
from errors import ValidationError

logger = logging.getLogger(__name__)

AVATAR_URL_PREFIX = "/uploads/avatars/"
# other image types are stored without an extension
AVATAR_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/bmp": ".bmp",
}


def _avatar_path(avatar_url: str):
    """Local file behind an uploaded avatar url, or None for external (OAuth) avatars."""
    if not avatar_url or not avatar_url.startswith(AVATAR_URL_PREFIX):
        return None
    return os.path.join(config.AVATAR_DIR, os.path.basename(avatar_url))


def remove_avatar_file(avatar_url: str):
    path = _avatar_path(avatar_url)
    if path and os.path.exists(path):
        os.remove(path)
        logger.debug("Removed avatar file %s", path)


def save_avatar(user_id: int, file: UploadFile) -> str:
    if not (file.content_type or "").startswith("image/"):
        raise ValidationError("Only image files are allowed")

    data = file.file.read(config.MAX_AVATAR_BYTES + 1)
    if len(data) > config.MAX_AVATAR_BYTES:
        raise ValidationError(f"File size must be less than {config.MAX_AVATAR_BYTES // (1024 * 1024)}MB")

    os.makedirs(config.AVATAR_DIR, exist_ok=True)
    file_ext = AVATAR_EXTENSIONS.get(file.content_type, "")
    filename = f"avatar_{user_id}_{uuid.uuid4().hex}{file_ext}"
    with open(os.path.join(config.AVATAR_DIR, filename), "wb") as buffer:
        buffer.write(data)
    return AVATAR_URL_PREFIX + filename
