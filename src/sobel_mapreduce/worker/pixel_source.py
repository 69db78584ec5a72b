"""
Pixel input source.

The coordinator cuts the input file into byte ranges aligned to line
boundaries. Each split carries the row-major index of its first pixel, so a
map task reading only its own range still knows where every pixel sits.
"""

import logging
import os
from dataclasses import dataclass
from typing import Iterator, List

from ..contributions import PixelRecord
from ..errors import MalformedInputError
from ..image import ImageShape, decode_text, parse_header, parse_value

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InputSplit:
    """Byte range [start_pos, end_pos) holding pixels first_index .. first_index + num_pixels - 1."""
    split_id: int
    start_pos: int
    end_pos: int
    first_index: int
    num_pixels: int


def read_header(path: str) -> ImageShape:
    """Read the "<rows> <cols>" header of an image file."""
    with open(path, 'rb') as f:
        return parse_header(decode_text(f.readline(), path))


def split_image_input(path: str, num_splits: int) -> List[InputSplit]:
    """Split an image file into at most num_splits index-aware ranges.

    Splits never cut a line, and empty splits are dropped. Raises
    MalformedInputError if the file does not hold rows * cols tokens.
    """
    if num_splits < 1:
        raise ValueError(f"num_splits must be positive, got {num_splits}")

    # Binary mode so that tell() and len(line) are byte offsets
    with open(path, 'rb') as f:
        shape = parse_header(decode_text(f.readline(), path))
        data_start = f.tell()
        file_size = os.path.getsize(path)

        # Calculate split size (rounded up)
        split_size = max(1, (file_size - data_start + num_splits - 1) // num_splits)

        splits = []
        start_pos = data_start
        pixels_before = 0
        pixels_in_split = 0
        boundary = data_start + split_size

        while True:
            line = f.readline()
            if not line:
                break
            pixels_in_split += len(line.split())

            # Close the split at the first line end past its target offset
            if f.tell() >= boundary and len(splits) < num_splits - 1:
                if pixels_in_split:
                    splits.append(InputSplit(len(splits), start_pos, f.tell(), pixels_before, pixels_in_split))
                    pixels_before += pixels_in_split
                    pixels_in_split = 0
                    start_pos = f.tell()
                while boundary <= f.tell():
                    boundary += split_size

        if pixels_in_split:
            splits.append(InputSplit(len(splits), start_pos, f.tell(), pixels_before, pixels_in_split))
            pixels_before += pixels_in_split

    if pixels_before != shape.num_pixels:
        raise MalformedInputError(
            f"Header declares {shape.rows}x{shape.cols} = {shape.num_pixels} pixels, found {pixels_before}"
        )

    logger.info(f"Split {path} ({shape.rows}x{shape.cols}) into {len(splits)} splits")
    return splits


class PixelSplitReader:
    """Iterates the pixel records of one split."""

    def __init__(self, path: str, split: InputSplit, shape: ImageShape):
        self.path = path
        self.split = split
        self.shape = shape
        self.consumed = 0

    @property
    def progress(self) -> float:
        """Fraction of this split's pixels consumed so far."""
        if self.split.num_pixels == 0:
            return 1.0
        return min(1.0, self.consumed / self.split.num_pixels)

    def __iter__(self) -> Iterator[PixelRecord]:
        self.consumed = 0
        with open(self.path, 'rb') as f:
            f.seek(self.split.start_pos)
            index = self.split.first_index
            while f.tell() < self.split.end_pos:
                line = f.readline()
                if not line:
                    break
                for token in decode_text(line, self.path).split():
                    if self.consumed >= self.split.num_pixels:
                        raise MalformedInputError(f"Split {self.split.split_id} holds more than {self.split.num_pixels} pixels")
                    row, col = self.shape.position(index)
                    value = parse_value(token)
                    index += 1
                    self.consumed += 1
                    yield PixelRecord(row, col, value)

        if self.consumed != self.split.num_pixels:
            raise MalformedInputError(
                f"Split {self.split.split_id} ended after {self.consumed} of {self.split.num_pixels} pixels"
            )
