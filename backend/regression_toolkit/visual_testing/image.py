"""
Raster image buffer and codec boundary

The comparator only works on RasterImage (RGBA, 8 bits per channel,
non-premultiplied, row-major). Everything that touches file formats lives
here so the diff algorithm can be exercised on raw pixel buffers.
"""

import io
import logging
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from regression_toolkit.core.exceptions import DecodeFailureError, ValidationError

logger = logging.getLogger(__name__)

CHANNELS = 4


@dataclass(frozen=True)
class RasterImage:
    """
    Immutable RGBA8 pixel buffer

    Attributes:
        width: Width in pixels
        height: Height in pixels
        data: width * height * 4 bytes, row-major RGBA
    """

    width: int
    height: int
    data: bytes

    def __post_init__(self):
        if self.width < 0 or self.height < 0:
            raise ValidationError(f"Invalid image size {self.width}x{self.height}")
        expected = self.width * self.height * CHANNELS
        if len(self.data) != expected:
            raise ValidationError(
                f"Pixel buffer has {len(self.data)} bytes, expected {expected} "
                f"for {self.width}x{self.height} RGBA"
            )
        if not isinstance(self.data, bytes):
            object.__setattr__(self, "data", bytes(self.data))

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    def pixel(self, x: int, y: int) -> tuple[int, int, int, int]:
        """Return the RGBA tuple at (x, y)"""
        i = (y * self.width + x) * CHANNELS
        d = self.data
        return (d[i], d[i + 1], d[i + 2], d[i + 3])

    @classmethod
    def solid(cls, width: int, height: int, rgba: tuple[int, int, int, int]) -> "RasterImage":
        """Create an image filled with a single color"""
        return cls(width, height, bytes(rgba) * (width * height))

    def with_rect(
        self, x: int, y: int, width: int, height: int, rgba: tuple[int, int, int, int]
    ) -> "RasterImage":
        """Return a copy with a filled rectangle (clipped to the image)"""
        x0, y0 = max(0, x), max(0, y)
        x1, y1 = min(self.width, x + width), min(self.height, y + height)
        if x0 >= x1 or y0 >= y1:
            return self
        img = to_pil(self)
        # paste replaces pixels, alpha included, instead of compositing
        img.paste(tuple(rgba), (x0, y0, x1, y1))
        return from_pil(img)


def from_pil(img: Image.Image) -> RasterImage:
    """Convert a Pillow image to a RasterImage"""
    if img.mode != "RGBA":
        img = img.convert("RGBA")
    return RasterImage(img.width, img.height, img.tobytes())


def to_pil(image: RasterImage) -> Image.Image:
    """Convert a RasterImage to a Pillow RGBA image"""
    return Image.frombytes("RGBA", (image.width, image.height), image.data)


def decode_image(content: bytes, reference: str | None = None) -> RasterImage:
    """
    Decode encoded image bytes (PNG, JPEG, WebP, ...) to RGBA

    Args:
        content: Encoded image bytes
        reference: Where the bytes came from, used in error messages

    Returns:
        Decoded RasterImage

    Raises:
        DecodeFailureError: If the bytes are not a readable image
    """
    if not content:
        raise DecodeFailureError("empty image data", reference)

    try:
        with Image.open(io.BytesIO(content)) as img:
            img.load()
            return from_pil(img)
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        ValueError,
        SyntaxError,
    ) as e:
        logger.debug(f"Decode failed for {reference or '<bytes>'}: {e}")
        raise DecodeFailureError(str(e), reference) from e


def encode_png(image: RasterImage) -> bytes:
    """
    Encode a RasterImage as PNG

    Output is deterministic: no metadata chunks and a fixed compression level,
    so identical pixels always produce identical bytes.
    """
    buffer = io.BytesIO()
    to_pil(image).save(buffer, format="PNG", optimize=False, compress_level=6)
    return buffer.getvalue()
