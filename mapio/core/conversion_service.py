import logging
import os
import tempfile

from ..utils.config import Config
from ..utils.constants import RasterFormat
from .errors import FormatError, MapIOError
from .metadata_codec import (MetadataCodec, check_origin, check_resolution,
                             check_threshold)
from .models import MapDescriptor, Origin, SavedMap
from .occupancy_mapper import OccupancyMapper
from .raster_codec import RasterCodec

logger = logging.getLogger(__name__)


def _file_mode():
    """umaskを適用した新規ファイルのパーミッション"""
    umask = os.umask(0)
    os.umask(umask)
    return Config.FILE_MODE & ~umask


def _write_temp(directory, name, payload, mode):
    """同じディレクトリに一時ファイルとして書き出し、そのパスを返す"""
    fd, temp_path = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        # mkstemp always creates 0600
        os.chmod(temp_path, mode)
    except BaseException:
        _discard(temp_path)
        raise
    return temp_path


def _move_aside(directory, name, path):
    """既存ファイルを退避し、退避先のパスを返す"""
    fd, backup_path = tempfile.mkstemp(prefix=f".{name}.", suffix=".bak", dir=directory)
    os.close(fd)
    try:
        os.replace(path, backup_path)
    except BaseException:
        _discard(backup_path)
        raise
    return backup_path


def _rollback(raster_file, backup_path, raster_moved):
    """画像ファイルを保存前の状態に戻す。戻せなかった場合はFalse"""
    try:
        if backup_path is not None:
            os.replace(backup_path, raster_file)
        elif raster_moved:
            _discard(raster_file)
    except OSError as e:
        logger.error(f"Cannot restore {raster_file} ({e}); previous raster kept at {backup_path}")
        return False
    return True


def _discard(path):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


class ConversionService:
    """画像ファイル・地図YAMLと占有格子の変換をまとめるクラス"""

    @staticmethod
    def load(raster_path, resolution, negate=Config.DEFAULT_NEGATE,
             occupied_thresh=Config.DEFAULT_OCCUPIED_THRESH,
             free_thresh=Config.DEFAULT_FREE_THRESH, origin=Config.DEFAULT_ORIGIN):
        """画像ファイルを読み込んで占有格子を生成
        Parameters:
            raster_path (str): 読み込む画像ファイルのパス
            resolution (float): 1セルあたりの長さ [m]
            negate (bool): 白黒の意味を反転する
            occupied_thresh (float): 占有と判定する閾値
            free_thresh (float): 空きと判定する閾値
            origin (tuple): セル(0,0)の姿勢 (x, y, theta)
        """
        # パラメータはファイルを開く前に検証する
        resolution = check_resolution(resolution)
        occupied_thresh = check_threshold("occupied_thresh", occupied_thresh)
        free_thresh = check_threshold("free_thresh", free_thresh)
        origin = check_origin(origin)
        if free_thresh > occupied_thresh:
            logger.warning(f"free_thresh ({free_thresh}) is greater than "
                           f"occupied_thresh ({occupied_thresh}); OCCUPIED takes precedence")

        image = RasterCodec.read(raster_path)
        grid = OccupancyMapper.forward(
            image,
            occupied_thresh=occupied_thresh,
            free_thresh=free_thresh,
            negate=bool(negate),
            resolution=resolution,
            origin=origin,
        )
        logger.info(f"Loaded map {raster_path}: {grid.width}x{grid.height} "
                    f"at {grid.resolution} m/cell")
        return grid

    @staticmethod
    def load_map(descriptor_path):
        """地図YAMLを読み込み、参照している画像から占有格子を生成"""
        descriptor = MetadataCodec.read(descriptor_path)
        yaml_dir = os.path.dirname(descriptor_path)
        image_path = descriptor.image
        if not os.path.isabs(image_path):
            image_path = os.path.join(yaml_dir, image_path)
        return ConversionService.load(
            image_path,
            descriptor.resolution,
            negate=descriptor.negate,
            occupied_thresh=descriptor.occupied_thresh,
            free_thresh=descriptor.free_thresh,
            origin=descriptor.origin,
        )

    @staticmethod
    def save(grid, base_path, fmt=Config.DEFAULT_FORMAT,
             occupied_thresh=Config.DEFAULT_OCCUPIED_THRESH,
             free_thresh=Config.DEFAULT_FREE_THRESH):
        """占有格子を画像ファイルと地図YAMLとして保存
        書き込みは一時ファイルに行い、成功した場合のみリネームする。
        YAMLの置き換えに失敗した場合は既存の画像ファイルを元に戻す。
        Returns:
            SavedMap: (画像ファイルのパス, YAMLファイルのパス)
        """
        try:
            fmt = RasterFormat.from_name(fmt)
        except ValueError as e:
            raise FormatError(str(e)) from e

        base_path = os.fspath(base_path)
        raster_file = base_path + fmt.extension
        metadata_file = base_path + Config.DESCRIPTOR_SUFFIX
        descriptor = MetadataCodec.validate(MapDescriptor(
            image=os.path.basename(raster_file),
            resolution=grid.resolution,
            origin=tuple(Origin(*grid.origin)),
            occupied_thresh=occupied_thresh,
            free_thresh=free_thresh,
            negate=False,
        ))

        raster_bytes = RasterCodec.encode(OccupancyMapper.inverse(grid), fmt)
        metadata_bytes = MetadataCodec.serialize(descriptor).encode("utf-8")

        directory = os.path.dirname(os.path.abspath(base_path))
        name = os.path.basename(base_path)
        mode = _file_mode()
        temp_files = []
        backup_path = None
        raster_moved = False
        try:
            temp_files.append(_write_temp(directory, name, raster_bytes, mode))
            temp_files.append(_write_temp(directory, name, metadata_bytes, mode))
            if os.path.isfile(raster_file):
                backup_path = _move_aside(directory, name, raster_file)
            os.replace(temp_files[0], raster_file)
            raster_moved = True
            os.replace(temp_files[1], metadata_file)
        except OSError as e:
            if not _rollback(raster_file, backup_path, raster_moved):
                backup_path = None
            raise MapIOError(f"Cannot write map ({e.strerror or e})", base_path) from e
        finally:
            for temp_path in temp_files:
                _discard(temp_path)
            if backup_path is not None:
                _discard(backup_path)

        logger.info(f"Saved map {raster_file} and {metadata_file} "
                    f"({grid.width}x{grid.height}, {fmt.value})")
        return SavedMap(raster_file=raster_file, metadata_file=metadata_file)
