"""
Per-pixel decomposition of the Sobel convolution.

Each input pixel contributes a weighted addend to the horizontal and
vertical sums of every in-range pixel in its 3x3 neighbourhood. Summing
all addends that share a target reproduces the direct convolution.
"""

from enum import Enum
from typing import List, NamedTuple, Tuple

from .image import ImageShape
from .sobel import SOBEL_H, SOBEL_V


class Component(str, Enum):
    """Gradient component. Sorts as its string value, so H < V."""
    HORIZONTAL = "H"
    VERTICAL = "V"

    def __str__(self):
        return self.value


class PixelRecord(NamedTuple):
    row: int
    col: int
    value: int


ContributionKey = Tuple[int, int, Component]
PixelKey = Tuple[int, int]


class Contribution(NamedTuple):
    target_row: int
    target_col: int
    component: Component
    value: int

    @property
    def key(self) -> ContributionKey:
        return (self.target_row, self.target_col, self.component)

    @property
    def pixel_key(self) -> PixelKey:
        return (self.target_row, self.target_col)


OFFSETS = [(di, dj) for di in (-1, 0, 1) for dj in (-1, 0, 1)]


def emit_contributions(pixel: PixelRecord, shape: ImageShape) -> List[Contribution]:
    """Return the contributions of one pixel to its neighbourhood.

    A source at offset (di, dj) from its target sits at the mirrored kernel
    cell (1 - di, 1 - dj) relative to that target. Targets outside the image
    are dropped; zero-weight contributions are kept so every in-range target
    receives both components.
    """
    row, col, value = pixel
    contributions = []
    for di, dj in OFFSETS:
        target_row, target_col = row + di, col + dj
        if not shape.contains(target_row, target_col):
            continue
        ki, kj = 1 - di, 1 - dj
        contributions.append(Contribution(target_row, target_col, Component.HORIZONTAL, value * SOBEL_H[ki][kj]))
        contributions.append(Contribution(target_row, target_col, Component.VERTICAL, value * SOBEL_V[ki][kj]))
    return contributions
