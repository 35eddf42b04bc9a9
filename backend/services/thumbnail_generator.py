"""
Thumbnail Generator Service

Resizes uploaded images with Pillow and derives the storage paths of the
renditions. Rendering is CPU bound and synchronous; the worker runs it in a
thread executor so the event loop keeps serving requests.
"""

import io
import logging
import posixpath

from PIL import Image, ImageOps

from services.interfaces import IImageRenderer

logger = logging.getLogger(__name__)

# Formats that cannot carry an alpha channel or palette
_RGB_ONLY_FORMATS = {'JPEG', 'BMP'}


def thumbnail_path(storage_ref: str, size: int) -> str:
    """
    Derive the rendition path for an original blob.

    "ab12.png" → "ab12_250.png"; "ab12" → "ab12_250"
    """
    root, ext = posixpath.splitext(storage_ref)
    return f"{root}_{size}{ext}"


class PillowRenderer(IImageRenderer):
    """
    Scales images to a target width, keeping aspect ratio and source format.

    Images already narrower than the target are re-encoded at their own size
    rather than upscaled.
    """

    def __init__(self, fallback_format: str = 'PNG', jpeg_quality: int = 85):
        self.fallback_format = fallback_format
        self.jpeg_quality = jpeg_quality

    def render(self, data: bytes, target_width: int) -> bytes:
        if target_width <= 0:
            raise ValueError(f"Invalid thumbnail width: {target_width}")

        with Image.open(io.BytesIO(data)) as source:
            image_format = source.format or self.fallback_format
            # Honour EXIF rotation so portrait photos stay portrait
            image = ImageOps.exif_transpose(source)

            width, height = image.size
            if width > target_width:
                target_height = max(1, round(height * target_width / width))
                image = image.resize((target_width, target_height), Image.LANCZOS)

            if image_format in _RGB_ONLY_FORMATS and image.mode not in ('RGB', 'L'):
                image = image.convert('RGB')

            save_kwargs = {}
            if image_format == 'JPEG':
                save_kwargs['quality'] = self.jpeg_quality

            output = io.BytesIO()
            image.save(output, format=image_format, **save_kwargs)

        logger.debug(f"Rendered {image_format} thumbnail at width {target_width}")
        return output.getvalue()
