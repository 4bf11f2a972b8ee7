"""Choosing which resolution variant of a photo to show.

Variants are stored ascending by resolution. Every selector normalizes the
variants' File stubs through the registry before looking at their status.
"""
import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from network.protocol import Photo, PhotoSize
from core import file_state
from core.file_registry import FileRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CellBox:
    """Whole display cells covering an image, and the padding that centres it."""
    columns: int
    rows: int
    margin_x: int
    margin_y: int


def cells_for(width: int, height: int, cell_width: int, cell_height: int) -> CellBox:
    columns = max(1, math.ceil(width / cell_width))
    rows = max(1, math.ceil(height / cell_height))
    return CellBox(
        columns=columns,
        rows=rows,
        margin_x=(columns * cell_width - width) // 2,
        margin_y=(rows * cell_height - height) // 2,
    )


def scale_to_fit(width: int, height: int, max_width: int, max_height: int) -> Tuple[int, int]:
    """Largest size with the same aspect ratio that fits inside the bounds."""
    if width <= 0 or height <= 0:
        return 0, 0
    if width * max_height > height * max_width:
        return max_width, max(1, height * max_width // width)
    return max(1, width * max_height // height), max_height


def fits(width: int, height: int, max_width: int, max_height: int) -> bool:
    """True if scaling to one bound keeps the other dimension within its bound."""
    if width <= 0 or height <= 0:
        return False
    return (height * max_width // width <= max_height
            or width * max_height // height <= max_width)


class ThumbnailSelector:
    def __init__(self, registry: FileRegistry, cell_size: Tuple[int, int], max_limits: Tuple[int, int]):
        self.registry = registry
        self.cell_size = cell_size
        self.max_limits = max_limits

    def _sizes(self, photo: Photo) -> List[PhotoSize]:
        for size in photo.sizes:
            self.registry.renew(size, "photo")
        return photo.sizes

    def highres(self, photo: Photo) -> Optional[PhotoSize]:
        """Largest variant that is downloaded or can be downloaded."""
        for size in reversed(self._sizes(photo)):
            if file_state.downloaded_or_eligible(size.photo):
                return size
        return None

    def thumb(self, photo: Photo) -> Optional[PhotoSize]:
        """Smallest placeholder: downloaded first, then downloading, then downloadable."""
        sizes = self._sizes(photo)
        for matches in (file_state.is_downloaded, file_state.is_downloading, file_state.can_download):
            for size in sizes:
                if matches(size.photo):
                    return size
        return None

    def bounds(self, limits: Optional[Tuple[int, int]] = None) -> Tuple[int, int]:
        """Pixel bounds for a (columns, rows) limit in display cells."""
        columns, rows = limits or self.max_limits
        cell_width, cell_height = self.cell_size
        return columns * cell_width, rows * cell_height

    def best(self, photo: Photo, limits: Optional[Tuple[int, int]] = None) -> Optional[PhotoSize]:
        """Largest usable variant that fits *limits*, else the largest usable one."""
        max_width, max_height = self.bounds(limits)
        fallback = None
        for size in reversed(self._sizes(photo)):
            if not file_state.downloaded_or_eligible(size.photo):
                continue
            if fallback is None:
                fallback = size
            if fits(size.width, size.height, max_width, max_height):
                return size
        if fallback is not None:
            logger.debug(f"No variant fits {max_width}x{max_height}; using {fallback.width}x{fallback.height}")
        return fallback

    def cells(self, size: PhotoSize, limits: Optional[Tuple[int, int]] = None) -> CellBox:
        """Cell footprint of *size* once scaled into *limits*."""
        max_width, max_height = self.bounds(limits)
        width, height = scale_to_fit(size.width, size.height, max_width, max_height)
        cell_width, cell_height = self.cell_size
        return cells_for(width, height, cell_width, cell_height)
