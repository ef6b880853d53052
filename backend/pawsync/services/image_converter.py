# backend/pawsync/services/image_converter.py
"""
Image Converter - raw capture bytes to web-ready JPEG and WebP.

Pure and deterministic: the same input bytes always produce byte-identical
outputs, and nothing here touches the network or the object store. Conversion
either yields a real JPEG and a real WebP or raises; it never passes source
bytes through as a "converted" asset.
"""

import asyncio
from io import BytesIO
from typing import Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from ..constants import (
    DEFAULT_JPEG_QUALITY,
    DEFAULT_MAX_DIMENSION,
    DEFAULT_WEBP_QUALITY,
    JPEG_BACKGROUND_COLOR,
)
from ..enums import LogEmoji, LoggerName
from ..exceptions import ConversionError, UnsupportedFormat
from ..models.pipeline_models import ConversionResult
from .logger import get_service_logger

logger = get_service_logger(LoggerName.CONVERSION_PIPELINE, LogEmoji.IMAGE)

SUPPORTED_SOURCE_FORMATS = {"PNG", "JPEG", "WEBP", "GIF", "BMP", "TIFF"}


class ImageConverter:
    """Resizes to fit a square box and encodes progressive JPEG plus WebP."""

    def __init__(
        self,
        max_dimension: int = DEFAULT_MAX_DIMENSION,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
        webp_quality: int = DEFAULT_WEBP_QUALITY,
    ):
        self.max_dimension = max_dimension
        self.jpeg_quality = jpeg_quality
        self.webp_quality = webp_quality

    @classmethod
    def from_settings(cls, settings) -> "ImageConverter":
        return cls(
            max_dimension=settings.convert_max_dimension,
            jpeg_quality=settings.convert_jpeg_quality,
            webp_quality=settings.convert_webp_quality,
        )

    def _open(self, source: bytes) -> Image.Image:
        if not source:
            raise UnsupportedFormat("Empty image data", operation="convert")
        try:
            image = Image.open(BytesIO(source))
            image.load()
        except UnidentifiedImageError as e:
            raise UnsupportedFormat(
                "Source is not a recognised raster image", operation="convert"
            ) from e
        except (OSError, Image.DecompressionBombError) as e:
            raise ConversionError(
                f"Failed to decode source image: {e}", operation="convert"
            ) from e

        if image.format not in SUPPORTED_SOURCE_FORMATS:
            raise UnsupportedFormat(
                f"Unsupported source format: {image.format}", operation="convert"
            )
        if getattr(image, "is_animated", False) and getattr(image, "n_frames", 1) > 1:
            raise UnsupportedFormat(
                "Animated images are not supported", operation="convert"
            )
        return image

    def fit_size(self, width: int, height: int) -> Tuple[int, int]:
        """Target size inside the box, aspect preserved, never upscaled."""
        longest = max(width, height)
        if longest <= self.max_dimension:
            return width, height
        scale = self.max_dimension / longest
        return max(1, round(width * scale)), max(1, round(height * scale))

    def _resize(self, image: Image.Image) -> Image.Image:
        image = ImageOps.exif_transpose(image)
        if image.mode not in ("RGB", "RGBA"):
            has_alpha = image.mode in ("LA", "PA") or (
                image.mode == "P" and "transparency" in image.info
            )
            image = image.convert("RGBA" if has_alpha else "RGB")

        target = self.fit_size(*image.size)
        if target != image.size:
            image = image.resize(target, Image.Resampling.LANCZOS)
        return image

    def _encode_jpeg(self, image: Image.Image) -> bytes:
        if image.mode == "RGBA":
            background = Image.new("RGB", image.size, JPEG_BACKGROUND_COLOR)
            background.paste(image, mask=image.getchannel("A"))
            image = background

        output = BytesIO()
        image.save(
            output,
            format="JPEG",
            quality=self.jpeg_quality,
            optimize=True,
            progressive=True,
        )
        return output.getvalue()

    def _encode_webp(self, image: Image.Image) -> bytes:
        output = BytesIO()
        image.save(output, format="WEBP", quality=self.webp_quality, method=6)
        return output.getvalue()

    def convert(self, source: bytes) -> ConversionResult:
        """
        Convert raw image bytes.

        Raises:
            UnsupportedFormat: Animated, empty or unrecognised input
            ConversionError: Decoding or encoding failed
        """
        image = self._open(source)
        try:
            resized = self._resize(image)
            jpeg_bytes = self._encode_jpeg(resized)
            webp_bytes = self._encode_webp(resized)
        except (OSError, ValueError) as e:
            raise ConversionError(
                f"Failed to encode image: {e}", operation="convert"
            ) from e
        finally:
            image.close()

        if not jpeg_bytes or not webp_bytes:
            raise ConversionError("Encoder produced no output", operation="convert")

        result = ConversionResult(
            jpeg_bytes=jpeg_bytes,
            webp_bytes=webp_bytes,
            jpeg_size=len(jpeg_bytes),
            webp_size=len(webp_bytes),
            savings_percent=savings_percent(len(jpeg_bytes), len(webp_bytes)),
            width=resized.width,
            height=resized.height,
        )
        logger.debug(
            f"Converted image to {result.width}x{result.height}: "
            f"jpeg={result.jpeg_size}B webp={result.webp_size}B "
            f"({result.savings_percent}% saved)"
        )
        return result

    async def convert_async(self, source: bytes) -> ConversionResult:
        """convert() in a worker thread so encoding does not block the loop."""
        return await asyncio.to_thread(self.convert, source)


def savings_percent(jpeg_size: int, webp_size: int) -> float:
    """100 * (1 - webp/jpeg), rounded to two decimals."""
    if jpeg_size <= 0:
        return 0.0
    return round(100.0 * (1.0 - webp_size / jpeg_size), 2)
