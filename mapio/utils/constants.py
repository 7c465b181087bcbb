from enum import Enum, IntEnum

# Magic numbers
PGM_ASCII_MAGIC = b"P2"
PGM_BINARY_MAGIC = b"P5"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

# Sample limits
MAX_8BIT = 255
MAX_16BIT = 65535

class CellState(IntEnum):
    """占有格子のセル状態（ROSのOccupancyGridと同じ値）"""
    UNKNOWN = -1
    FREE = 0
    OCCUPIED = 100

# Inverse palette (cell state -> pixel value)
CELL_PALETTE = {
    CellState.OCCUPIED: 0,
    CellState.FREE: 254,
    CellState.UNKNOWN: 205,
}

class RasterFormat(Enum):
    PGM = "pgm"
    PNG = "png"

    @property
    def extension(self):
        return "." + self.value

    @classmethod
    def from_name(cls, name):
        """文字列・拡張子からフォーマットを取得"""
        if isinstance(name, RasterFormat):
            return name
        key = str(name).lower().lstrip(".")
        for fmt in cls:
            if fmt.value == key:
                return fmt
        raise ValueError(f"Unsupported raster format: {name}")

    @classmethod
    def from_path(cls, path):
        """ファイル名の拡張子からフォーマットを推定（不明ならNone）"""
        suffix = str(path).rsplit(".", 1)[-1].lower() if "." in str(path) else ""
        for fmt in cls:
            if fmt.value == suffix:
                return fmt
        return None
