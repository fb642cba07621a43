"""
Screenshot Comparison Algorithm

Pixel-by-pixel comparison of two equally sized RGBA rasters, following the
pixelmatch heuristic: color distance is measured in YIQ space after blending
onto white, and differences that look like anti-aliasing (judged from the
3x3 neighbourhood in both images) can be excluded from the count.

Pure and deterministic: no I/O, no randomness, no shared state.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any

from regression_toolkit.core.config import DEFAULT_THRESHOLD
from regression_toolkit.core.exceptions import DimensionMismatchError, ValidationError
from regression_toolkit.visual_testing.image import RasterImage, decode_image, encode_png
from regression_toolkit.visual_testing.regions import IgnoreMask, IgnoreRegion

logger = logging.getLogger(__name__)

# Maximum possible YIQ delta between two colors
MAX_YIQ_DELTA = 35215.0

DIFF_COLOR = (255, 0, 0)
AA_COLOR = (255, 255, 0)
MASK_COLOR = (0, 120, 255)


@dataclass(frozen=True)
class ComparisonOptions:
    """
    Options for a single comparison

    Attributes:
        threshold: Fraction of differing pixels (0.0 - 1.0) above which the
            comparison is significant
        include_antialiasing: Count anti-aliased pixels as differences
        ignore_regions: Rectangles excluded from scoring
        pixel_threshold: Per-pixel perceptual floor (0.0 - 1.0); smaller is
            more sensitive
        diff_alpha: Opacity of unchanged pixels in the diff image
    """

    threshold: float = DEFAULT_THRESHOLD
    include_antialiasing: bool = False
    ignore_regions: tuple[IgnoreRegion, ...] = ()
    pixel_threshold: float = 0.1
    diff_alpha: float = 0.1

    def __post_init__(self):
        for name in ("threshold", "pixel_threshold", "diff_alpha"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
                raise ValidationError(f"{name} must be between 0.0 and 1.0, got {value!r}")
        object.__setattr__(self, "ignore_regions", tuple(self.ignore_regions))


@dataclass(frozen=True)
class ComparisonResult:
    """Result of a screenshot comparison"""

    pixels_different: int
    percentage_different: float  # 0.0 to 100.0
    width: int
    height: int
    diff_image: RasterImage = field(repr=False)
    threshold: float  # Fraction used for significance (0.0 to 1.0)
    is_significant: bool
    antialiased_pixels: int = 0
    ignored_pixels: int = 0

    @property
    def dimensions(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}

    def diff_png(self) -> bytes:
        """Encode the diff image as PNG"""
        return encode_png(self.diff_image)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (without the diff image)"""
        return {
            "pixels_different": self.pixels_different,
            "percentage_different": self.percentage_different,
            "dimensions": self.dimensions,
            "threshold": self.threshold,
            "is_significant": self.is_significant,
            "antialiased_pixels": self.antialiased_pixels,
            "ignored_pixels": self.ignored_pixels,
        }


# ============================================================
# Color math
# ============================================================


def _blend(c: float, a: float) -> float:
    """Blend a channel value with white at opacity a"""
    return 255 + (c - 255) * a


def _rgb2y(r: float, g: float, b: float) -> float:
    return r * 0.29889531 + g * 0.58662247 + b * 0.11448223


def _rgb2i(r: float, g: float, b: float) -> float:
    return r * 0.59597799 - g * 0.27417610 - b * 0.32180189


def _rgb2q(r: float, g: float, b: float) -> float:
    return r * 0.21147017 - g * 0.52261711 + b * 0.31114694


def color_delta(d1: bytes, d2: bytes, k: int, m: int, y_only: bool = False) -> float:
    """
    Squared YIQ distance between pixel k of d1 and pixel m of d2

    The sign tells which pixel is brighter (negative when d1 is lighter).
    With y_only, returns the signed brightness difference instead.
    """
    r1, g1, b1, a1 = d1[k], d1[k + 1], d1[k + 2], d1[k + 3]
    r2, g2, b2, a2 = d2[m], d2[m + 1], d2[m + 2], d2[m + 3]

    if a1 == a2 and r1 == r2 and g1 == g2 and b1 == b2:
        return 0.0

    if a1 < 255:
        a = a1 / 255
        r1, g1, b1 = _blend(r1, a), _blend(g1, a), _blend(b1, a)
    if a2 < 255:
        a = a2 / 255
        r2, g2, b2 = _blend(r2, a), _blend(g2, a), _blend(b2, a)

    y1 = _rgb2y(r1, g1, b1)
    y2 = _rgb2y(r2, g2, b2)
    y = y1 - y2

    if y_only:
        return y

    i = _rgb2i(r1, g1, b1) - _rgb2i(r2, g2, b2)
    q = _rgb2q(r1, g1, b1) - _rgb2q(r2, g2, b2)
    delta = 0.5053 * y * y + 0.299 * i * i + 0.1957 * q * q

    return -delta if y1 > y2 else delta


# ============================================================
# Anti-aliasing detection
# ============================================================


def _has_many_siblings(data: bytes, x1: int, y1: int, width: int, height: int) -> bool:
    """Whether pixel (x1, y1) has more than two identical neighbours"""
    x0 = max(x1 - 1, 0)
    y0 = max(y1 - 1, 0)
    x2 = min(x1 + 1, width - 1)
    y2 = min(y1 + 1, height - 1)
    pos = (y1 * width + x1) * 4
    zeroes = 1 if (x1 == x0 or x1 == x2 or y1 == y0 or y1 == y2) else 0

    pixel = data[pos : pos + 4]
    for x in range(x0, x2 + 1):
        for y in range(y0, y2 + 1):
            if x == x1 and y == y1:
                continue
            pos2 = (y * width + x) * 4
            if data[pos2 : pos2 + 4] == pixel:
                zeroes += 1
            if zeroes > 2:
                return True

    return False


def is_antialiased(
    data: bytes, x1: int, y1: int, width: int, height: int, other: bytes
) -> bool:
    """
    Whether pixel (x1, y1) of `data` looks like an anti-aliased edge pixel

    A pixel is anti-aliased when it has at most two identical neighbours and
    its darkest or brightest neighbour sits in a flat area (many identical
    siblings) in both images.
    """
    x0 = max(x1 - 1, 0)
    y0 = max(y1 - 1, 0)
    x2 = min(x1 + 1, width - 1)
    y2 = min(y1 + 1, height - 1)
    pos = (y1 * width + x1) * 4
    zeroes = 1 if (x1 == x0 or x1 == x2 or y1 == y0 or y1 == y2) else 0
    min_delta = 0.0
    max_delta = 0.0
    min_x = min_y = max_x = max_y = 0

    for x in range(x0, x2 + 1):
        for y in range(y0, y2 + 1):
            if x == x1 and y == y1:
                continue

            delta = color_delta(data, data, pos, (y * width + x) * 4, True)

            if delta == 0:
                zeroes += 1
                if zeroes > 2:
                    return False
            elif delta < min_delta:
                min_delta = delta
                min_x, min_y = x, y
            elif delta > max_delta:
                max_delta = delta
                max_x, max_y = x, y

    # No darker or no brighter neighbour: a regular change, not an edge
    if min_delta == 0 or max_delta == 0:
        return False

    return (
        _has_many_siblings(data, min_x, min_y, width, height)
        and _has_many_siblings(other, min_x, min_y, width, height)
    ) or (
        _has_many_siblings(data, max_x, max_y, width, height)
        and _has_many_siblings(other, max_x, max_y, width, height)
    )


# ============================================================
# Comparator
# ============================================================


class ScreenshotComparator:
    """
    Compares screenshots pixel by pixel.

    Features:
    - Perceptual (YIQ) per-pixel distance with a configurable floor
    - Anti-aliasing detection to suppress font/edge rendering noise
    - Ignore regions for dynamic content areas
    - Diff image: red = changed, yellow = anti-aliasing, blue tint = ignored,
      everything else a faded grayscale copy of the current screenshot
    """

    def compare(
        self,
        baseline: RasterImage,
        current: RasterImage,
        options: ComparisonOptions | None = None,
    ) -> ComparisonResult:
        """
        Compare two screenshots.

        Args:
            baseline: Accepted screenshot
            current: Screenshot from the run under test
            options: Threshold, anti-aliasing and ignore-region options

        Returns:
            ComparisonResult with pixel counts, percentage and diff image

        Raises:
            DimensionMismatchError: If the images differ in width or height
        """
        options = options or ComparisonOptions()

        if baseline.size != current.size:
            raise DimensionMismatchError(baseline.size, current.size)

        width, height = baseline.size
        total_pixels = width * height
        mask = IgnoreMask(width, height, options.ignore_regions)

        img1 = baseline.data
        img2 = current.data
        out = bytearray(total_pixels * 4)
        max_delta = MAX_YIQ_DELTA * options.pixel_threshold * options.pixel_threshold
        alpha = options.diff_alpha
        check_aa = not options.include_antialiasing

        gray_cache: dict[bytes, tuple[int, int, int]] = {}
        masked_cache: dict[bytes, tuple[int, int, int]] = {}

        diff_count = 0
        aa_count = 0

        for y in range(height):
            for x in range(width):
                index = y * width + x
                pos = index * 4
                pixel = img2[pos : pos + 4]

                if mask.covered and mask.covers_index(index):
                    rgb = masked_cache.get(pixel)
                    if rgb is None:
                        rgb = _tint(_gray(pixel, alpha), MASK_COLOR)
                        masked_cache[pixel] = rgb
                    _put(out, pos, rgb)
                    continue

                if img1[pos : pos + 4] != pixel:
                    delta = color_delta(img1, img2, pos, pos)
                    if abs(delta) > max_delta:
                        if check_aa and (
                            is_antialiased(img1, x, y, width, height, img2)
                            or is_antialiased(img2, x, y, width, height, img1)
                        ):
                            aa_count += 1
                            _put(out, pos, AA_COLOR)
                        else:
                            diff_count += 1
                            _put(out, pos, DIFF_COLOR)
                        continue

                rgb = gray_cache.get(pixel)
                if rgb is None:
                    rgb = _gray(pixel, alpha)
                    gray_cache[pixel] = rgb
                _put(out, pos, rgb)

        percentage = (diff_count / total_pixels) * 100 if total_pixels else 0.0
        is_significant = percentage > options.threshold * 100

        logger.debug(
            f"Comparison complete: {diff_count}/{total_pixels} pixels differ "
            f"({percentage:.2f}%), aa={aa_count}, ignored={mask.covered}, "
            f"significant={is_significant}"
        )

        return ComparisonResult(
            pixels_different=diff_count,
            percentage_different=percentage,
            width=width,
            height=height,
            diff_image=RasterImage(width, height, bytes(out)),
            threshold=options.threshold,
            is_significant=is_significant,
            antialiased_pixels=aa_count,
            ignored_pixels=mask.covered,
        )


def _gray(pixel: bytes, alpha: float) -> tuple[int, int, int]:
    """Faded grayscale rendering of a pixel for the diff background"""
    r, g, b, a = pixel
    value = _clamp(_blend(_rgb2y(r, g, b), alpha * a / 255))
    return (value, value, value)


def _tint(rgb: tuple[int, int, int], color: tuple[int, int, int]) -> tuple[int, int, int]:
    return tuple((c + t + 1) // 2 for c, t in zip(rgb, color))


def _clamp(value: float) -> int:
    return max(0, min(255, int(math.floor(value + 0.5))))


def _put(out: bytearray, pos: int, rgb: tuple[int, int, int]) -> None:
    out[pos] = rgb[0]
    out[pos + 1] = rgb[1]
    out[pos + 2] = rgb[2]
    out[pos + 3] = 255


_default_comparator = ScreenshotComparator()


def compare(
    baseline: RasterImage,
    current: RasterImage,
    options: ComparisonOptions | None = None,
) -> ComparisonResult:
    """Compare two decoded screenshots with the default comparator"""
    return _default_comparator.compare(baseline, current, options)


def compare_encoded(
    baseline: bytes,
    current: bytes,
    options: ComparisonOptions | None = None,
) -> ComparisonResult:
    """
    Decode two encoded screenshots and compare them

    Raises:
        DecodeFailureError: If either image cannot be decoded
        DimensionMismatchError: If the images differ in size
    """
    return compare(
        decode_image(baseline, "baseline"),
        decode_image(current, "current"),
        options,
    )


def generate_heatmap(diff_image: RasterImage, grid_size: int = 20) -> list[list[float]]:
    """
    Summarize a diff image as a grid of change densities

    Args:
        diff_image: Diff image produced by the comparator
        grid_size: Number of cells per axis

    Returns:
        Rows of cell values in 0..1 (share of changed pixels in the cell)
    """
    if grid_size < 1:
        raise ValidationError("grid_size must be at least 1")

    width, height = diff_image.size
    if width == 0 or height == 0:
        return []

    cell_width = math.ceil(width / grid_size)
    cell_height = math.ceil(height / grid_size)
    data = diff_image.data
    changed = bytes((*DIFF_COLOR, 255))

    heatmap: list[list[float]] = []
    for top in range(0, height, cell_height):
        row: list[float] = []
        for left in range(0, width, cell_width):
            hits = 0
            count = 0
            for y in range(top, min(top + cell_height, height)):
                for x in range(left, min(left + cell_width, width)):
                    pos = (y * width + x) * 4
                    if data[pos : pos + 4] == changed:
                        hits += 1
                    count += 1
            row.append(hits / count)
        heatmap.append(row)

    return heatmap
