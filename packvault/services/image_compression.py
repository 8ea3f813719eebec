"""
Downscale and recompress card images with Pillow.

Output keeps the aspect ratio inside a max box and is encoded as WebP when
the Pillow build supports it, otherwise JPEG.
"""

from dataclasses import dataclass
from io import BytesIO

from PIL import Image, UnidentifiedImageError, features

from packvault.models.failure import ImageDecodeError


@dataclass(frozen=True)
class ImageCompressionOptions:
    """Bounds for recompressed images. ``quality`` is 1-100."""

    max_width: int = 600
    max_height: int = 450
    quality: int = 85
    format: str = "webp"


@dataclass(frozen=True)
class CompressedImage:
    """Recompressed bytes plus size bookkeeping."""

    data: bytes
    format: str
    width: int
    height: int
    original_size: int

    @property
    def compressed_size(self) -> int:
        return len(self.data)

    @property
    def compression_ratio(self) -> float:
        """Percent saved relative to the original (negative if larger)."""
        if self.original_size == 0:
            return 0.0
        return (self.original_size - self.compressed_size) / self.original_size * 100


def webp_supported() -> bool:
    return bool(features.check("webp"))


def compress_image(
    data: bytes,
    options: ImageCompressionOptions | None = None,
    source: str = "<bytes>",
) -> CompressedImage:
    """
    Decode, downscale and re-encode an image.

    Args:
        data: Encoded image bytes
        options: Size and quality bounds
        source: Label used in error messages (usually the URL)

    Returns:
        CompressedImage

    Raises:
        ImageDecodeError: If the bytes are not a decodable image
    """
    options = options or ImageCompressionOptions()

    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            converted = img.convert("RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise ImageDecodeError(source, detail=str(e)) from e

    # thumbnail() only ever shrinks and keeps the aspect ratio
    converted.thumbnail((options.max_width, options.max_height), Image.Resampling.LANCZOS)

    if options.format.lower() == "webp" and webp_supported():
        out_format = "WEBP"
        quality = options.quality
    else:
        out_format = "JPEG"
        quality = min(int(options.quality * 0.9), 90)

    buffer = BytesIO()
    converted.save(buffer, format=out_format, quality=quality, optimize=True)

    return CompressedImage(
        data=buffer.getvalue(),
        format=out_format.lower(),
        width=converted.width,
        height=converted.height,
        original_size=len(data),
    )
