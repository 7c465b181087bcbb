import math
from dataclasses import dataclass, field
from typing import NamedTuple, Optional, Tuple

import numpy as np

from ..utils.config import Config
from ..utils.constants import CellState, RasterFormat


class Origin(NamedTuple):
    x: float = 0.0
    y: float = 0.0
    theta: float = 0.0


class SavedMap(NamedTuple):
    raster_file: str
    metadata_file: str


def _freeze(array):
    array = np.array(array, copy=True)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class RasterImage:
    """デコード済みの画像（行0が画像の最上段）"""
    width: int
    height: int
    channels: int
    max_value: int
    pixels: np.ndarray   # (height, width, channels)

    def __post_init__(self):
        pixels = np.asarray(self.pixels)
        if pixels.ndim == 2:
            pixels = pixels[:, :, np.newaxis]
        if pixels.shape != (self.height, self.width, self.channels):
            raise ValueError(
                f"Pixel buffer shape {pixels.shape} does not match "
                f"{self.height}x{self.width}x{self.channels}"
            )
        object.__setattr__(self, "pixels", _freeze(pixels))

    @property
    def has_alpha(self) -> bool:
        return self.channels in (2, 4)

    @property
    def color_channels(self) -> int:
        return self.channels - 1 if self.has_alpha else self.channels


@dataclass(frozen=True, eq=False)
class OccupancyGrid:
    """占有格子地図のスナップショット

    cellsの行0は画像の最下段に対応する（y軸上向き）。
    """
    width: int
    height: int
    resolution: float
    origin: Origin
    cells: np.ndarray    # (height, width) int8, CellStateの値
    frame_id: str = field(default=Config.DEFAULT_FRAME_ID)

    def __post_init__(self):
        cells = np.asarray(self.cells, dtype=np.int8)
        if cells.shape != (self.height, self.width):
            raise ValueError(
                f"Cell array shape {cells.shape} does not match {self.height}x{self.width}"
            )
        object.__setattr__(self, "cells", _freeze(cells))
        object.__setattr__(self, "origin", Origin(*self.origin))

    @property
    def data(self):
        """行優先で平坦化したセル値（0 / 100 / -1）"""
        return [int(v) for v in self.cells.ravel()]

    def state_at(self, col, row) -> CellState:
        return CellState(int(self.cells[row, col]))

    def counts(self):
        """状態ごとのセル数"""
        return {state: int(np.count_nonzero(self.cells == state)) for state in CellState}

    def cell_to_world(self, col, row) -> Tuple[float, float]:
        """セル座標からワールド座標（セル中心、メートル）への変換"""
        local_x = (col + 0.5) * self.resolution
        local_y = (row + 0.5) * self.resolution
        cos_t, sin_t = math.cos(self.origin.theta), math.sin(self.origin.theta)
        x = self.origin.x + local_x * cos_t - local_y * sin_t
        y = self.origin.y + local_x * sin_t + local_y * cos_t
        return x, y

    def world_to_cell(self, x, y) -> Optional[Tuple[int, int]]:
        """ワールド座標からセル座標への変換（地図外ならNone）"""
        rel_x = x - self.origin.x
        rel_y = y - self.origin.y
        cos_t, sin_t = math.cos(self.origin.theta), math.sin(self.origin.theta)
        local_x = rel_x * cos_t + rel_y * sin_t
        local_y = -rel_x * sin_t + rel_y * cos_t
        col = int(math.floor(local_x / self.resolution))
        row = int(math.floor(local_y / self.resolution))
        if 0 <= col < self.width and 0 <= row < self.height:
            return col, row
        return None


@dataclass(frozen=True)
class MapDescriptor:
    """地図YAMLの内容"""
    image: str
    resolution: float
    origin: Tuple[float, float, float] = Config.DEFAULT_ORIGIN
    occupied_thresh: float = Config.DEFAULT_OCCUPIED_THRESH
    free_thresh: float = Config.DEFAULT_FREE_THRESH
    negate: bool = Config.DEFAULT_NEGATE

    @property
    def raster_format(self) -> Optional[RasterFormat]:
        return RasterFormat.from_path(self.image)
