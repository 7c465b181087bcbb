import logging
import math
from numbers import Real

import yaml

from ..utils.config import Config
from .errors import MapIOError, ValidationError
from .models import MapDescriptor

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("image", "resolution", "origin")


def check_resolution(value):
    """解像度は正の数でなければならない"""
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValidationError("resolution", f"expected a number, got {value!r}")
    if not value > 0:
        raise ValidationError("resolution", f"must be > 0, got {value}")
    return float(value)


def check_threshold(name, value):
    """閾値は [0, 1] の範囲（大小関係は検証しない）"""
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValidationError(name, f"expected a number, got {value!r}")
    if not 0.0 <= value <= 1.0:
        raise ValidationError(name, f"must be within [0, 1], got {value}")
    return float(value)


def check_origin(value):
    if not isinstance(value, (list, tuple)) or len(value) != 3:
        raise ValidationError("origin", f"expected [x, y, theta], got {value!r}")
    origin = []
    for v in value:
        if isinstance(v, bool) or not isinstance(v, Real) or not math.isfinite(v):
            raise ValidationError("origin", f"expected finite numbers, got {value!r}")
        origin.append(float(v))
    return tuple(origin)


def check_negate(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ValidationError("negate", f"expected 0 or 1, got {value!r}")


def check_image(value):
    if not isinstance(value, str):
        raise ValidationError("image", f"expected a filename string, got {value!r}")
    if not value.strip():
        raise ValidationError("image", "raster filename must not be empty")
    return value


class MetadataCodec:
    """地図YAML（メタデータ）の読み書きを行うクラス"""

    @staticmethod
    def validate(descriptor):
        """MapDescriptorの検証（正規化した新しいインスタンスを返す）"""
        return MapDescriptor(
            image=check_image(descriptor.image),
            resolution=check_resolution(descriptor.resolution),
            origin=check_origin(descriptor.origin),
            occupied_thresh=check_threshold("occupied_thresh", descriptor.occupied_thresh),
            free_thresh=check_threshold("free_thresh", descriptor.free_thresh),
            negate=check_negate(descriptor.negate),
        )

    @staticmethod
    def parse(text):
        """YAML文字列(またはUTF-8のバイト列)からMapDescriptorを生成"""
        try:
            yaml_data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ValidationError("descriptor", f"not a valid YAML document ({e})") from e
        if not isinstance(yaml_data, dict):
            raise ValidationError("descriptor", "expected a key/value mapping")

        for key in REQUIRED_KEYS:
            if key not in yaml_data:
                raise ValidationError(key, "missing from descriptor")

        return MetadataCodec.validate(MapDescriptor(
            image=yaml_data["image"],
            resolution=yaml_data["resolution"],
            origin=yaml_data["origin"],
            occupied_thresh=yaml_data.get("occupied_thresh", Config.DEFAULT_OCCUPIED_THRESH),
            free_thresh=yaml_data.get("free_thresh", Config.DEFAULT_FREE_THRESH),
            negate=yaml_data.get("negate", int(Config.DEFAULT_NEGATE)),
        ))

    @staticmethod
    def serialize(descriptor):
        """MapDescriptorをYAML文字列に変換"""
        data = {
            'image': descriptor.image,
            'resolution': float(descriptor.resolution),
            'origin': [float(v) for v in descriptor.origin],
            'negate': int(bool(descriptor.negate)),
            'occupied_thresh': float(descriptor.occupied_thresh),
            'free_thresh': float(descriptor.free_thresh),
        }
        return yaml.dump(data, default_flow_style=False, sort_keys=False)

    @staticmethod
    def read(file_path):
        """YAMLファイルの読み込み"""
        try:
            with open(file_path, 'rb') as f:
                raw = f.read()
        except OSError as e:
            raise MapIOError(f"Cannot read map descriptor ({e.strerror})", file_path) from e
        descriptor = MetadataCodec.parse(raw)
        logger.debug(f"Loaded descriptor {file_path}: image={descriptor.image}, "
                     f"resolution={descriptor.resolution}")
        return descriptor
