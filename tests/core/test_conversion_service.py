import os
import stat

import numpy as np
import pytest
from PIL import Image

from mapio.core.conversion_service import ConversionService
from mapio.core.errors import FormatError, MapIOError, TruncatedDataError, ValidationError
from mapio.core.metadata_codec import MetadataCodec
from mapio.core.models import OccupancyGrid

from ..map_fixtures import (VALID_IMAGE_CONTENT, VALID_IMAGE_HEIGHT, VALID_IMAGE_RES,
                            VALID_IMAGE_WIDTH, VALID_PGM_FILE, VALID_YAML_FILE)


def _assert_valid_map(grid):
    assert grid.resolution == pytest.approx(VALID_IMAGE_RES)
    assert grid.width == VALID_IMAGE_WIDTH
    assert grid.height == VALID_IMAGE_HEIGHT
    assert grid.frame_id == "map"
    data = grid.data
    for i in range(grid.width * grid.height):
        assert data[i] == VALID_IMAGE_CONTENT[i]


def test_load_pgm(valid_grid):
    _assert_valid_map(valid_grid)
    assert tuple(valid_grid.origin) == (0.0, 0.0, 0.0)


def test_load_png(valid_png_file):
    grid = ConversionService.load(valid_png_file, VALID_IMAGE_RES, False, 0.65, 0.1, (0.0, 0.0, 0.0))

    _assert_valid_map(grid)


def test_load_map_from_descriptor():
    _assert_valid_map(ConversionService.load_map(VALID_YAML_FILE))


def test_load_map_resolves_image_relative_to_descriptor(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    grid = ConversionService.load_map(os.path.relpath(VALID_YAML_FILE))

    _assert_valid_map(grid)


@pytest.mark.parametrize("resolution", [0, 0.0, -0.1])
def test_load_rejects_bad_resolution_before_io(resolution, tmp_path):
    missing = tmp_path / "does_not_exist.pgm"

    with pytest.raises(ValidationError) as excinfo:
        ConversionService.load(str(missing), resolution, False, 0.65, 0.1, (0, 0, 0))
    assert excinfo.value.field == "resolution"


def test_load_rejects_threshold_out_of_range():
    with pytest.raises(ValidationError):
        ConversionService.load(VALID_PGM_FILE, 0.1, False, 1.2, 0.1, (0, 0, 0))


def test_load_propagates_codec_errors(tmp_path):
    corrupt = tmp_path / "corrupt.pgm"
    corrupt.write_bytes(b"JUNK")
    short = tmp_path / "short.pgm"
    short.write_bytes(b"P5\n10 10\n255\n\x00")

    with pytest.raises(FormatError):
        ConversionService.load(str(corrupt), 0.1)
    with pytest.raises(TruncatedDataError):
        ConversionService.load(str(short), 0.1)
    with pytest.raises(MapIOError):
        ConversionService.load(str(tmp_path / "missing.pgm"), 0.1)


def test_load_applies_origin():
    grid = ConversionService.load(VALID_PGM_FILE, 0.1, origin=(-1.5, 2.0, 0.0))

    assert grid.origin.x == -1.5
    assert grid.cell_to_world(0, 0) == pytest.approx((-1.45, 2.05))


@pytest.mark.parametrize("fmt", ["pgm", "png"])
def test_save_then_load_round_trip(valid_grid, tmp_path, fmt):
    base = str(tmp_path / "temp_map")

    saved = ConversionService.save(valid_grid, base, fmt)

    assert saved.raster_file == base + "." + fmt
    assert saved.metadata_file == base + ".yaml"
    grid = ConversionService.load(saved.raster_file, VALID_IMAGE_RES, False, 0.65, 0.1, (0.0, 0.0, 0.0))
    _assert_valid_map(grid)
    _assert_valid_map(ConversionService.load_map(saved.metadata_file))
    os.remove(saved.raster_file)
    os.remove(saved.metadata_file)
    assert os.listdir(tmp_path) == []


def test_save_writes_descriptor(valid_grid, tmp_path):
    saved = ConversionService.save(valid_grid, str(tmp_path / "office"), "png",
                                   occupied_thresh=0.7, free_thresh=0.2)

    descriptor = MetadataCodec.read(saved.metadata_file)

    assert descriptor.image == "office.png"
    assert descriptor.resolution == pytest.approx(VALID_IMAGE_RES)
    assert descriptor.origin == (0.0, 0.0, 0.0)
    assert descriptor.occupied_thresh == 0.7
    assert descriptor.free_thresh == 0.2
    assert descriptor.negate is False


def test_save_does_not_modify_grid(valid_grid, tmp_path):
    before = valid_grid.cells.copy()

    ConversionService.save(valid_grid, str(tmp_path / "map"))

    assert np.array_equal(valid_grid.cells, before)


def test_save_overwrites_existing_files(valid_grid, tmp_path):
    base = str(tmp_path / "map")
    ConversionService.save(valid_grid, base, "pgm")
    cells = np.full((2, 3), 100, dtype=np.int8)
    small = OccupancyGrid(width=3, height=2, resolution=0.5, origin=(0, 0, 0), cells=cells)

    ConversionService.save(small, base, "pgm")

    assert ConversionService.load_map(base + ".yaml").data == [100] * 6


def test_save_rejects_bad_input_without_writing(valid_grid, tmp_path):
    cells = np.zeros((1, 1), dtype=np.int8)
    bad = OccupancyGrid(width=1, height=1, resolution=0.0, origin=(0, 0, 0), cells=cells)

    with pytest.raises(ValidationError):
        ConversionService.save(bad, str(tmp_path / "bad"))
    with pytest.raises(FormatError):
        ConversionService.save(valid_grid, str(tmp_path / "bad"), "jpeg")
    assert os.listdir(tmp_path) == []


def test_failed_save_leaves_no_files(valid_grid, tmp_path, monkeypatch):
    def failing_replace(src, dst):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(os, "replace", failing_replace)

    with pytest.raises(MapIOError):
        ConversionService.save(valid_grid, str(tmp_path / "map"))
    assert os.listdir(tmp_path) == []


def test_save_to_missing_directory_is_io_error(valid_grid, tmp_path):
    with pytest.raises(MapIOError):
        ConversionService.save(valid_grid, str(tmp_path / "no_such_dir" / "map"))


def test_failed_descriptor_write_removes_new_raster(valid_grid, tmp_path):
    base = str(tmp_path / "map")
    os.mkdir(base + ".yaml")

    with pytest.raises(MapIOError):
        ConversionService.save(valid_grid, base)
    assert os.listdir(tmp_path) == ["map.yaml"]
    assert os.path.isdir(base + ".yaml")


def test_failed_descriptor_write_restores_previous_raster(valid_grid, tmp_path):
    base = str(tmp_path / "map")
    saved = ConversionService.save(valid_grid, base)
    with open(saved.raster_file, "rb") as f:
        before = f.read()
    os.remove(saved.metadata_file)
    os.mkdir(saved.metadata_file)
    cells = np.full((2, 3), 100, dtype=np.int8)
    small = OccupancyGrid(width=3, height=2, resolution=0.5, origin=(0, 0, 0), cells=cells)

    with pytest.raises(MapIOError):
        ConversionService.save(small, base)

    with open(saved.raster_file, "rb") as f:
        assert f.read() == before
    assert sorted(os.listdir(tmp_path)) == ["map.pgm", "map.yaml"]


@pytest.mark.parametrize("fmt", ["pgm", "png"])
def test_saved_files_follow_umask(valid_grid, tmp_path, fmt):
    old_umask = os.umask(0o022)
    try:
        saved = ConversionService.save(valid_grid, str(tmp_path / "map"), fmt)
    finally:
        os.umask(old_umask)

    assert stat.S_IMODE(os.stat(saved.raster_file).st_mode) == 0o644
    assert stat.S_IMODE(os.stat(saved.metadata_file).st_mode) == 0o644


def test_load_png_transparency_key_is_unknown(tmp_path):
    path = tmp_path / "keyed.png"
    Image.fromarray(np.array([[0, 254], [254, 0]], dtype=np.uint8)).save(
        str(path), format="PNG", transparency=0)

    grid = ConversionService.load(str(path), 0.1)

    assert grid.data == [0, -1, -1, 0]
