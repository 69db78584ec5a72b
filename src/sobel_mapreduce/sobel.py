"""
Sobel kernels and the single-process reference filter.

The reference filter is the correctness oracle for the MapReduce variants.
"""

import math

from .image import Image, MAX_VALUE, MIN_VALUE

SOBEL_H = (
    (1, 0, -1),
    (2, 0, -2),
    (1, 0, -1),
)

SOBEL_V = (
    (1, 2, 1),
    (0, 0, 0),
    (-1, -2, -1),
)


def gradient_magnitude(sum_of_squares: int) -> int:
    """Combine Sh^2 + Sv^2 into an output pixel: sqrt, clamp to [0, 255], truncate."""
    magnitude = math.sqrt(sum_of_squares)
    if magnitude < MIN_VALUE:
        return MIN_VALUE
    if magnitude > MAX_VALUE:
        return MAX_VALUE
    return int(magnitude)


def filter_window(window) -> int:
    """Apply both kernels to a 3x3 window (window[i][j] is top-left based)."""
    sum_h = 0
    sum_v = 0
    for i in range(3):
        for j in range(3):
            sum_h += SOBEL_H[i][j] * window[i][j]
            sum_v += SOBEL_V[i][j] * window[i][j]
    return gradient_magnitude(sum_h * sum_h + sum_v * sum_v)


def filter_image(image: Image) -> Image:
    """Return a new image holding the Sobel gradient magnitude.

    Border pixels have no full 3x3 neighbourhood and are always 0.
    """
    rows, cols = image.rows, image.cols
    filtered = Image.zeros(rows, cols)
    src = image.pixels

    for i in range(1, rows - 1):
        for j in range(1, cols - 1):
            window = [src[i - 1][j - 1:j + 2], src[i][j - 1:j + 2], src[i + 1][j - 1:j + 2]]
            filtered.pixels[i][j] = filter_window(window)

    return filtered
