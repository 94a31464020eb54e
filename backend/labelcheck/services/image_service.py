"""Image preparation: validate uploads and turn them into a model-usable reference.

Compression is best effort: a label image is resized to the configured width
(never enlarged), auto-contrasted, sharpened and re-encoded as JPEG. If any of
that fails the original bytes are sent unchanged.
"""

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, ImageFilter, ImageOps

from ..config import Settings, get_settings
from .errors import InvalidInputError

logger = logging.getLogger(__name__)

# Fallback when a file has no MIME type
DEFAULT_MIME_TYPE = "image/jpeg"

DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(?P<params>(;[^;,]*)*?);base64,(?P<data>.*)$", re.DOTALL)


@dataclass
class PreparedImage:
    """Bytes ready to send, with before/after sizes for logging."""
    data: bytes
    mime_type: str
    original_size: int
    compressed: bool


def compress_image(image_bytes: bytes, max_width: int = 1600, jpeg_quality: int = 70) -> bytes:
    """
    Resize to ``max_width`` (no enlargement), normalize contrast, sharpen,
    and encode as JPEG.

    Raises whatever Pillow raises for unreadable input.
    """
    img = Image.open(io.BytesIO(image_bytes))
    img = ImageOps.exif_transpose(img)

    # Convert to RGB (handles RGBA PNGs, palette images, etc.)
    if img.mode != "RGB":
        img = img.convert("RGB")

    w, h = img.size
    if w > max_width:
        new_h = max(1, round(h * max_width / w))
        img = img.resize((max_width, new_h), Image.LANCZOS)
        logger.debug(f"Resized image from {w}x{h} to {max_width}x{new_h}")

    img = ImageOps.autocontrast(img)
    img = img.filter(ImageFilter.SHARPEN)

    out = io.BytesIO()
    img.save(out, format="JPEG", quality=jpeg_quality, optimize=True)
    return out.getvalue()


def encode_data_url(image_bytes: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def decode_data_url(data_url: str) -> Tuple[bytes, str]:
    """
    Split a base64 ``data:`` URL into (bytes, mime type).

    Raises:
        InvalidInputError: not a base64 data URL, or the payload is not valid base64.
    """
    match = DATA_URL_PATTERN.match(data_url.strip())
    if not match:
        raise InvalidInputError("imageDataUrl must be a base64 data URL")
    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError):
        raise InvalidInputError("imageDataUrl contains invalid base64 data")
    return data, match.group("mime") or DEFAULT_MIME_TYPE


class ImageService:
    """Validation and compression for uploaded label images."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def validate_image(self, image_bytes: Optional[bytes], mime_type: Optional[str]) -> Tuple[bool, str]:
        """
        Validate an upload before it is prepared.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not image_bytes:
            return False, "Image file is required"

        if mime_type and mime_type not in self.settings.allowed_mime_types:
            allowed = ", ".join(sorted(m.split("/", 1)[1].upper() for m in self.settings.allowed_mime_types))
            return False, f"Invalid file type. Allowed formats: {allowed}"

        size_mb = len(image_bytes) / (1024 * 1024)
        if size_mb > self.settings.max_upload_size_mb:
            return False, f"Image exceeds {self.settings.max_upload_size_mb}MB upload limit. Please resize or compress."

        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                img.verify()
        except Exception as e:
            return False, f"Unable to read image: {str(e)}"

        return True, ""

    def prepare(self, image_bytes: bytes, mime_type: Optional[str]) -> PreparedImage:
        """Compress when possible; fall back to the original bytes on failure."""
        mime_type = mime_type or DEFAULT_MIME_TYPE
        try:
            compressed = compress_image(
                image_bytes,
                max_width=self.settings.image_max_width,
                jpeg_quality=self.settings.jpeg_quality,
            )
        except Exception as e:
            logger.warning(f"Image compression failed, using original: {e}")
            logger.info(f"Image bytes: {len(image_bytes)}")
            return PreparedImage(data=image_bytes, mime_type=mime_type, original_size=len(image_bytes), compressed=False)

        logger.info(
            f"Image compressed: {len(image_bytes)/1024:.0f}KB → {len(compressed)/1024:.0f}KB JPEG"
        )
        return PreparedImage(data=compressed, mime_type=DEFAULT_MIME_TYPE, original_size=len(image_bytes), compressed=True)

    def to_data_url(self, image_bytes: bytes, mime_type: Optional[str]) -> str:
        """Prepare the image and encode it as a ``data:`` URL the model can read."""
        prepared = self.prepare(image_bytes, mime_type)
        return encode_data_url(prepared.data, prepared.mime_type)
