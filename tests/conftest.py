"""
Pytest configuration and shared fixtures
"""

import os
import random
import shutil
import tempfile

import pytest

from sobel_mapreduce.image import Image, format_image


@pytest.fixture
def temp_dir():
    """Create temporary directory for test files"""
    dirpath = tempfile.mkdtemp()
    yield dirpath
    shutil.rmtree(dirpath)


@pytest.fixture
def shared_dir(temp_dir):
    """Shared directory for intermediate and reduce output files"""
    path = os.path.join(temp_dir, 'shared')
    os.makedirs(path)
    return path


def write_text(path, text):
    with open(path, 'w') as f:
        f.write(text)
    return path


def make_random_image(rows, cols, seed=0):
    rng = random.Random(seed)
    return Image([[rng.randint(0, 255) for _ in range(cols)] for _ in range(rows)])


@pytest.fixture
def random_image():
    """Deterministic 9x11 image with random values"""
    return make_random_image(9, 11, seed=42)


@pytest.fixture
def spike_image():
    """5x5 zeros with a single 255 at the centre"""
    image = Image.zeros(5, 5)
    image[2, 2] = 255
    return image


@pytest.fixture
def image_file(temp_dir):
    """Factory writing an Image to a file and returning its path"""
    def _write(image, name='input.txt'):
        return write_text(os.path.join(temp_dir, name), format_image(image))
    return _write
