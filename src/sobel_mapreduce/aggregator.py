"""
Aggregation stage: turns grouped partial sums into output pixels.

Three aggregators share the same lifecycle (start, reduce per group,
finalize):

- OrderedAggregator combines (row, col, component) groups. It depends on
  sorted delivery to a single instance: the H group of a pixel must arrive
  before its V group, and both must reach the same aggregator.
- PixelFoldAggregator combines (row, col) groups whose values are tagged
  with their component. Each group is complete on its own, so it needs no
  ordering and any number of instances may run.
- WholeImageAggregator receives the whole image under one key and runs
  the reference filter.

ImageAssembler collects the emitted pixels into the final image.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from .contributions import Component
from .errors import OrderingViolationError
from .image import Image, ImageShape, MAX_VALUE, MIN_VALUE
from .sobel import filter_image, gradient_magnitude

logger = logging.getLogger(__name__)

OutputPixel = Tuple[int, int, int]


class AggregatorState:
    IDLE = "IDLE"
    ACCUMULATING = "ACCUMULATING"
    FINALIZING = "FINALIZING"


class Aggregator:
    """Base lifecycle shared by all aggregators."""

    def __init__(self, shape: ImageShape):
        self.shape = shape
        self.state = AggregatorState.IDLE
        self.groups_processed = 0

    def start(self):
        if self.state != AggregatorState.IDLE:
            raise RuntimeError(f"Cannot start aggregator from state {self.state}")
        self.state = AggregatorState.ACCUMULATING

    def reduce(self, key, values) -> Iterator[OutputPixel]:
        if self.state != AggregatorState.ACCUMULATING:
            raise RuntimeError(f"Cannot reduce in state {self.state}")
        self.groups_processed += 1
        return self._reduce(key, values)

    def finalize(self) -> Iterator[OutputPixel]:
        if self.state != AggregatorState.ACCUMULATING:
            raise RuntimeError(f"Cannot finalize from state {self.state}")
        self.state = AggregatorState.FINALIZING
        return self._finalize()

    def _reduce(self, key, values) -> Iterator[OutputPixel]:
        raise NotImplementedError

    def _finalize(self) -> Iterator[OutputPixel]:
        return iter(())

    def _check_target(self, row: int, col: int):
        if not self.shape.contains(row, col):
            raise OrderingViolationError(f"Group targets pixel ({row}, {col}) outside {self.shape.rows}x{self.shape.cols} image")


class OrderedAggregator(Aggregator):
    """Two-pass combination over (row, col, component) groups.

    The first group seen for a pixel stores Sh^2; the second adds Sv^2 and
    emits the magnitude. Keys must arrive strictly increasing, which puts H
    before V for every pixel. Only one instance may exist per job.
    """

    def __init__(self, shape: ImageShape):
        super().__init__(shape)
        self._pending: Dict[Tuple[int, int], int] = {}
        self._last_key: Optional[Tuple[int, int, Component]] = None
        self.completed = 0

    @property
    def pending(self) -> int:
        return len(self._pending)

    def _reduce(self, key, values):
        row, col, component = key
        component = Component(component)
        self._check_target(row, col)

        if self._last_key is not None and key <= self._last_key:
            raise OrderingViolationError(f"Group {key} delivered after {self._last_key}; keys must be strictly increasing")
        self._last_key = key

        total = sum(values)
        square = total * total
        pixel = (row, col)

        if pixel not in self._pending:
            if component != Component.HORIZONTAL:
                raise OrderingViolationError(f"Vertical group for pixel {pixel} arrived before its horizontal group")
            self._pending[pixel] = square
            return iter(())

        if component != Component.VERTICAL:
            raise OrderingViolationError(f"Pixel {pixel} received a second horizontal group")
        prior = self._pending.pop(pixel)
        self.completed += 1
        return iter([(row, col, gradient_magnitude(prior + square))])

    def _finalize(self):
        if self._pending:
            sample = sorted(self._pending)[:5]
            raise OrderingViolationError(
                f"{len(self._pending)} pixel(s) received only one component group, e.g. {sample}; "
                "groups were split across aggregators or delivered out of order"
            )
        if self.completed != self.shape.num_pixels:
            raise OrderingViolationError(
                f"Only {self.completed} of {self.shape.num_pixels} pixels received both component groups"
            )
        logger.info(f"Ordered aggregation finished: {self.completed} pixels from {self.groups_processed} groups")
        return iter(())


@dataclass
class PixelAccumulator:
    """Two optional slots, one per gradient component."""
    horizontal: Optional[int] = None
    vertical: Optional[int] = None

    def add(self, component: Component, value: int):
        if Component(component) == Component.HORIZONTAL:
            self.horizontal = (self.horizontal or 0) + value
        else:
            self.vertical = (self.vertical or 0) + value

    @property
    def complete(self) -> bool:
        return self.horizontal is not None and self.vertical is not None

    def magnitude(self) -> int:
        if not self.complete:
            raise OrderingViolationError("Accumulator is missing a gradient component")
        return gradient_magnitude(self.horizontal * self.horizontal + self.vertical * self.vertical)


class PixelFoldAggregator(Aggregator):
    """Folds a (row, col) group of tagged partials in a single step."""

    def _reduce(self, key, values):
        row, col = key
        self._check_target(row, col)

        accumulator = PixelAccumulator()
        for component, value in values:
            accumulator.add(component, value)
        if not accumulator.complete:
            raise OrderingViolationError(f"Pixel ({row}, {col}) group is missing a gradient component")
        return iter([(row, col, accumulator.magnitude())])


class WholeImageAggregator(Aggregator):
    """Rebuilds the image from (row, col, value) triples and filters it."""

    def _reduce(self, key, values):
        image = Image.zeros(self.shape.rows, self.shape.cols)
        seen = 0
        for row, col, value in values:
            self._check_target(row, col)
            image[row, col] = value
            seen += 1
        if seen != self.shape.num_pixels:
            raise OrderingViolationError(
                f"Whole-image group holds {seen} pixels, expected {self.shape.num_pixels}"
            )

        filtered = filter_image(image)
        return ((r, c, filtered.pixels[r][c]) for r in range(self.shape.rows) for c in range(self.shape.cols))


class ImageAssembler:
    """Collects output pixels into the final image.

    Border pixels are 0 regardless of what the aggregators produced for them.
    Every interior pixel must be delivered exactly once.
    """

    def __init__(self, shape: ImageShape):
        self.shape = shape
        self._values: Dict[Tuple[int, int], int] = {}

    def add(self, row: int, col: int, value: int):
        if not self.shape.contains(row, col):
            raise OrderingViolationError(f"Output pixel ({row}, {col}) outside {self.shape.rows}x{self.shape.cols} image")
        if not MIN_VALUE <= value <= MAX_VALUE:
            raise ValueError(f"Output pixel ({row}, {col}) has value {value} outside [{MIN_VALUE}, {MAX_VALUE}]")
        if (row, col) in self._values:
            raise OrderingViolationError(f"Output pixel ({row}, {col}) produced more than once")
        self._values[(row, col)] = value

    def add_all(self, pixels):
        for row, col, value in pixels:
            self.add(row, col, value)

    def build(self) -> Image:
        image = Image.zeros(self.shape.rows, self.shape.cols)
        missing: List[Tuple[int, int]] = []
        for row in range(self.shape.rows):
            for col in range(self.shape.cols):
                if self.shape.is_border(row, col):
                    continue
                value = self._values.get((row, col))
                if value is None:
                    missing.append((row, col))
                else:
                    image[row, col] = value
        if missing:
            raise OrderingViolationError(f"{len(missing)} interior pixel(s) were never produced, e.g. {missing[:5]}")
        return image
