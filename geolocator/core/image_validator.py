"""
Upload validation for base64 image payloads.

Raises HTTPException directly (400 / 413 / 415) so routes can call it inline.
Sets PIL.Image.MAX_IMAGE_PIXELS to guard against decompression bombs.
"""

import base64
import binascii
import io
import logging
from typing import List, Sequence, Tuple

import pillow_heif
from fastapi import HTTPException
from PIL import Image

from geolocator.config import settings
from geolocator.schemas.requests import ImageInput, ImagePayload

pillow_heif.register_heif_opener()

# Above the resize cap; anything larger is rejected before it is decoded.
Image.MAX_IMAGE_PIXELS = settings.gemini_max_pixels * 16

logger = logging.getLogger(__name__)

ALLOWED_MEDIA_TYPES = {
    "image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif",
    "image/heic", "image/heif", "image/tiff", "image/bmp",
}
# Pillow format → media type forwarded to the reasoning service.
PILLOW_FORMATS = {
    "JPEG": "image/jpeg",
    "MPO": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
    "TIFF": "image/tiff",
    "BMP": "image/bmp",
    "HEIF": "image/heic",
}


def split_data_uri(data: str, mime_type: str) -> Tuple[str, str]:
    """'data:image/png;base64,AAAA' → ('AAAA', 'image/png'); plain base64 passes through."""
    if not data.startswith("data:"):
        return data, mime_type
    header, _, payload = data.partition(",")
    if ";base64" not in header:
        raise HTTPException(status_code=400, detail="Only base64 data URIs are supported")
    return payload, header[5:].split(";")[0] or mime_type


def _verify_content(content: bytes) -> str:
    """Media type of the decoded content; raises when Pillow cannot read it."""
    with Image.open(io.BytesIO(content)) as img:
        img.verify()
        if img.format not in PILLOW_FORMATS:
            raise ValueError(f"format mismatch: {img.format}")
        return PILLOW_FORMATS[img.format]


def decode_image(image: ImageInput) -> ImagePayload:
    payload, media_type = split_data_uri(image.data.strip(), image.mime_type)
    media_type = media_type.lower()
    if media_type not in ALLOWED_MEDIA_TYPES:
        raise HTTPException(status_code=415, detail=f"Unsupported image type: {media_type}")

    try:
        content = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Invalid base64 image data")

    if len(content) > settings.max_image_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"Image too large. Max {settings.max_image_upload_mb}MB allowed.",
        )

    try:
        detected = _verify_content(content)
    except Exception as e:
        logger.error(f"Corrupted or mismatched image upload ({media_type}): {e}")
        raise HTTPException(status_code=400, detail="Invalid file content or format mismatch.")

    if detected != media_type:
        logger.debug(f"Declared {media_type}, content is {detected}")
    return ImagePayload(data=content, media_type=detected)


def validate_images(images: Sequence[ImageInput]) -> List[ImagePayload]:
    if not images:
        raise HTTPException(status_code=400, detail="At least one image is required")
    if len(images) > settings.max_images:
        raise HTTPException(status_code=400, detail=f"Maximum {settings.max_images} images allowed")
    return [decode_image(image) for image in images]
