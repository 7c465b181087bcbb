import numpy as np
import pytest
from PIL import Image

from mapio import ConversionService

from .map_fixtures import VALID_IMAGE_PIXELS, VALID_IMAGE_RES, VALID_PGM_FILE


@pytest.fixture
def valid_png_file(tmp_path):
    """The fixture map written as an 8-bit gray PNG."""
    path = tmp_path / "testmap.png"
    Image.fromarray(np.array(VALID_IMAGE_PIXELS, dtype=np.uint8)).save(path)
    return str(path)


@pytest.fixture
def valid_grid():
    return ConversionService.load(VALID_PGM_FILE, VALID_IMAGE_RES, False, 0.65, 0.1, (0.0, 0.0, 0.0))
