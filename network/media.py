"""
Image uploads for posts and profile pictures.

Files land in the default storage (local MEDIA_ROOT, or Cloudinary when it is
configured) under ``img/<folder>/<10 random digits><extension>``. Entities
keep the URL returned by the storage.
"""

import logging
import os

from django.conf import settings
from django.core.files.storage import default_storage
from django.utils.crypto import get_random_string
from PIL import Image, UnidentifiedImageError

from .exceptions import ValidationFailed


logger = logging.getLogger(__name__)

POSTS_FOLDER = "posts"
PROFILE_FOLDER = "profile"


def validate_image(upload):
    if upload is None:
        raise ValidationFailed("No file uploaded.")

    content_type = getattr(upload, "content_type", "") or ""
    if not content_type.startswith("image/"):
        raise ValidationFailed("Only image files are allowed.")

    max_size = getattr(settings, "MAX_UPLOAD_SIZE", 5 * 1024 * 1024)
    if upload.size > max_size:
        raise ValidationFailed(f"Image must be at most {max_size // (1024 * 1024)} MB.")

    try:
        Image.open(upload).verify()
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise ValidationFailed("The uploaded file is not a valid image.") from None
    upload.seek(0)


def store_image(upload, folder):
    extension = os.path.splitext(upload.name or "")[1].lower()
    name = f"img/{folder}/{get_random_string(10, allowed_chars='0123456789')}{extension}"
    saved = default_storage.save(name, upload)
    logger.info(f"Stored upload {saved}")
    return default_storage.url(saved)


def save_upload(upload, folder):
    validate_image(upload)
    return store_image(upload, folder)


def delete_upload(url):
    """Remove a stored file given its URL. Unknown or remote URLs are left alone."""
    media_url = settings.MEDIA_URL
    if not url or not url.startswith(media_url):
        return
    name = url[len(media_url):]
    try:
        default_storage.delete(name)
    except Exception as e:
        logger.warning(f"Could not delete upload {name}: {e}")
