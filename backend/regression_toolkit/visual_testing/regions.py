"""
Ignore regions

Rectangles in image-pixel coordinates that are excluded from diff scoring,
typically timestamps, ads and other content that changes on every run.
"""

from dataclasses import dataclass
from typing import Any, Iterable

from PIL import Image, ImageDraw

MASKED = 255


@dataclass(frozen=True)
class IgnoreRegion:
    """A rectangle excluded from comparison"""

    x: int
    y: int
    width: int
    height: int
    reason: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IgnoreRegion":
        return cls(
            x=int(data.get("x", 0)),
            y=int(data.get("y", 0)),
            width=int(data.get("width", 0)),
            height=int(data.get("height", 0)),
            reason=data.get("reason"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "reason": self.reason,
        }

    def clip(self, width: int, height: int) -> tuple[int, int, int, int] | None:
        """
        Clip to an image of the given size

        Returns:
            (x0, y0, x1, y1) with exclusive upper bounds, or None if nothing
            of the region falls inside the image
        """
        if self.width <= 0 or self.height <= 0:
            return None
        x0 = max(0, self.x)
        y0 = max(0, self.y)
        x1 = min(width, self.x + self.width)
        y1 = min(height, self.y + self.height)
        if x0 >= x1 or y0 >= y1:
            return None
        return (x0, y0, x1, y1)


class IgnoreMask:
    """
    Per-pixel union of ignore regions for one image size

    Drawn as an "L" mode Pillow image where 255 marks an ignored pixel.
    Overlapping regions are merged; regions partially outside the image are
    clipped to it.
    """

    def __init__(self, width: int, height: int, regions: Iterable[IgnoreRegion] = ()):
        self.width = width
        self.height = height
        self.covered = 0
        self._cells = b""

        boxes = [box for box in (r.clip(width, height) for r in regions) if box is not None]
        if not boxes:
            return

        mask = Image.new("L", (width, height), 0)
        draw = ImageDraw.Draw(mask)
        for x0, y0, x1, y1 in boxes:
            draw.rectangle([x0, y0, x1 - 1, y1 - 1], fill=MASKED)

        self.covered = mask.histogram()[MASKED]
        self._cells = mask.tobytes()

    def __bool__(self) -> bool:
        return self.covered > 0

    def covers(self, x: int, y: int) -> bool:
        """Whether pixel (x, y) is excluded from scoring"""
        return self.covers_index(y * self.width + x)

    def covers_index(self, index: int) -> bool:
        """Whether the pixel at linear index (y * width + x) is excluded"""
        return bool(self._cells) and self._cells[index] == MASKED
