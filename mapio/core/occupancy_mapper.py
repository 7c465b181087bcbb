import numpy as np

from ..utils.config import Config
from ..utils.constants import CELL_PALETTE, MAX_8BIT, CellState
from .models import OccupancyGrid, Origin, RasterImage


class OccupancyMapper:
    """画像と占有格子の相互変換を行うクラス"""

    @staticmethod
    def validate_image(image):
        """画像データの検証"""
        if not isinstance(image, RasterImage):
            raise ValueError("Invalid image format")
        if image.pixels.ndim != 3:
            raise ValueError("Pixel data must be 3-dimensional")
        return True

    @staticmethod
    def intensity(image):
        """画像をグレースケールに変換（アルファを除くチャンネルの平均）"""
        color = image.pixels[:, :, :image.color_channels].astype(np.float64)
        if image.color_channels == 1:
            return color[:, :, 0]
        return np.mean(color, axis=2)

    @staticmethod
    def occupancy_score(image, negate=False):
        """各画素の占有度 o を計算
        negate=False の場合は暗い画素ほど占有度が高い
        """
        avg = OccupancyMapper.intensity(image)
        max_value = float(image.max_value)
        if negate:
            return avg / max_value
        return (max_value - avg) / max_value

    @staticmethod
    def forward(image, occupied_thresh=Config.DEFAULT_OCCUPIED_THRESH,
                free_thresh=Config.DEFAULT_FREE_THRESH, negate=False,
                resolution=Config.DEFAULT_RESOLUTION, origin=Config.DEFAULT_ORIGIN):
        """画像から占有格子を生成
        Parameters:
            image (RasterImage): デコード済みの画像
            occupied_thresh (float): これより大きい占有度をOCCUPIEDとする
            free_thresh (float): これより小さい占有度をFREEとする
            negate (bool): 白黒の意味を反転する
        """
        OccupancyMapper.validate_image(image)
        score = OccupancyMapper.occupancy_score(image, negate)

        cells = np.full((image.height, image.width), CellState.UNKNOWN, dtype=np.int8)
        # strict comparisons: scores equal to a threshold stay UNKNOWN
        cells[score < free_thresh] = CellState.FREE
        cells[score > occupied_thresh] = CellState.OCCUPIED
        if image.has_alpha:
            cells[image.pixels[:, :, -1] == 0] = CellState.UNKNOWN

        # 画像は上から下、格子は下から上（y軸は反転）
        return OccupancyGrid(
            width=image.width,
            height=image.height,
            resolution=resolution,
            origin=Origin(*origin),
            cells=np.flipud(cells),
        )

    @staticmethod
    def inverse(grid):
        """占有格子から保存用のグレースケール画像を生成"""
        pixels = np.full((grid.height, grid.width), CELL_PALETTE[CellState.UNKNOWN], dtype=np.uint8)
        pixels[grid.cells == CellState.OCCUPIED] = CELL_PALETTE[CellState.OCCUPIED]
        pixels[grid.cells == CellState.FREE] = CELL_PALETTE[CellState.FREE]
        return RasterImage(
            width=grid.width,
            height=grid.height,
            channels=1,
            max_value=MAX_8BIT,
            pixels=np.flipud(pixels),
        )
