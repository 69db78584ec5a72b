"""
Plain-text grayscale image format.

The first line holds "<rows> <cols>", followed by rows lines of cols
space-separated integers in [0, 255].
"""

from dataclasses import dataclass, field
from typing import List

from .errors import MalformedInputError

MIN_VALUE = 0
MAX_VALUE = 255


@dataclass(frozen=True)
class ImageShape:
    """Dimensions of an image."""
    rows: int
    cols: int

    def __post_init__(self):
        if self.rows < 1 or self.cols < 1:
            raise MalformedInputError(f"Image dimensions must be positive, got {self.rows}x{self.cols}")

    @property
    def num_pixels(self) -> int:
        return self.rows * self.cols

    def contains(self, row: int, col: int) -> bool:
        return 0 <= row < self.rows and 0 <= col < self.cols

    def is_border(self, row: int, col: int) -> bool:
        return row == 0 or col == 0 or row == self.rows - 1 or col == self.cols - 1

    def position(self, index: int):
        """Map a row-major pixel index to (row, col)."""
        return divmod(index, self.cols)


@dataclass
class Image:
    """Row-major grid of grayscale values."""
    pixels: List[List[int]] = field(default_factory=list)

    def __post_init__(self):
        if not self.pixels or not self.pixels[0]:
            raise MalformedInputError("Image must have at least one row and one column")
        width = len(self.pixels[0])
        for i, row in enumerate(self.pixels):
            if len(row) != width:
                raise MalformedInputError(f"Row {i} has {len(row)} values, expected {width}")

    @classmethod
    def zeros(cls, rows: int, cols: int) -> "Image":
        return cls([[0] * cols for _ in range(rows)])

    @property
    def shape(self) -> ImageShape:
        return ImageShape(len(self.pixels), len(self.pixels[0]))

    @property
    def rows(self) -> int:
        return len(self.pixels)

    @property
    def cols(self) -> int:
        return len(self.pixels[0])

    def __getitem__(self, position):
        row, col = position
        return self.pixels[row][col]

    def __setitem__(self, position, value):
        row, col = position
        self.pixels[row][col] = value


def parse_value(token: str) -> int:
    """Parse one pixel token, enforcing the [0, 255] range."""
    try:
        value = int(token)
    except ValueError:
        raise MalformedInputError(f"Invalid pixel value: {token!r}")
    if not MIN_VALUE <= value <= MAX_VALUE:
        raise MalformedInputError(f"Pixel value {value} outside [{MIN_VALUE}, {MAX_VALUE}]")
    return value


def parse_header(line: str) -> ImageShape:
    """Parse the "<rows> <cols>" header line."""
    parts = line.split()
    if len(parts) != 2:
        raise MalformedInputError(f"Invalid header line: {line.strip()!r}")
    try:
        rows, cols = int(parts[0]), int(parts[1])
    except ValueError:
        raise MalformedInputError(f"Invalid header line: {line.strip()!r}")
    return ImageShape(rows, cols)


def parse_image(text: str) -> Image:
    """Parse a whole image from its text form."""
    lines = text.splitlines()
    while lines and not lines[0].strip():
        lines.pop(0)
    if not lines:
        raise MalformedInputError("Empty image input")

    shape = parse_header(lines[0])
    tokens = " ".join(lines[1:]).split()
    if len(tokens) != shape.num_pixels:
        raise MalformedInputError(
            f"Header declares {shape.rows}x{shape.cols} = {shape.num_pixels} pixels, found {len(tokens)}"
        )

    values = [parse_value(t) for t in tokens]
    return Image([values[r * shape.cols:(r + 1) * shape.cols] for r in range(shape.rows)])


def format_image(image: Image) -> str:
    """Serialize an image to the text format."""
    lines = [f"{image.rows} {image.cols}"]
    for row in image.pixels:
        lines.append(" ".join(str(v) for v in row))
    return "\n".join(lines) + "\n"


def decode_text(data: bytes, path: str) -> str:
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError as e:
        raise MalformedInputError(f"{path} is not valid UTF-8 text: {e}") from e


def read_image(path: str) -> Image:
    with open(path, 'rb') as f:
        return parse_image(decode_text(f.read(), path))


def write_image(image: Image, path: str):
    with open(path, 'w') as f:
        f.write(format_image(image))
