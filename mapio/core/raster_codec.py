import io
import logging

import numpy as np
from PIL import Image, UnidentifiedImageError

from ..utils.config import Config
from ..utils.constants import (MAX_8BIT, MAX_16BIT, PGM_ASCII_MAGIC, PGM_BINARY_MAGIC,
                               PNG_SIGNATURE, RasterFormat)
from .errors import FormatError, MapIOError, TruncatedDataError
from .models import RasterImage

logger = logging.getLogger(__name__)

# Pillow mode -> (mode to convert to, channels)
_PNG_MODES = {
    "1": ("L", 1),
    "L": (None, 1),
    "LA": (None, 2),
    "La": ("LA", 2),
    "RGB": (None, 3),
    "RGBA": (None, 4),
    "I;16": (None, 1),
    "I;16B": (None, 1),
    "I": (None, 1),
}


def _header_tokens(data, count, start):
    """PGMヘッダの数値トークンを読み出す（#から行末まではコメント）"""
    tokens = []
    pos = start
    size = len(data)
    while len(tokens) < count:
        if pos >= size:
            raise TruncatedDataError("PGM header is incomplete")
        ch = data[pos:pos + 1]
        if ch == b"#":
            end = data.find(b"\n", pos)
            pos = size if end < 0 else end + 1
        elif ch.isspace():
            pos += 1
        else:
            begin = pos
            while pos < size and not data[pos:pos + 1].isspace() and data[pos:pos + 1] != b"#":
                pos += 1
            tokens.append(data[begin:pos])
    return tokens, pos


def _parse_pgm_header(data):
    tokens, pos = _header_tokens(data, 3, 2)
    try:
        width, height, max_val = (int(t.decode("ascii")) for t in tokens)
    except (UnicodeDecodeError, ValueError) as e:
        raise FormatError(f"Malformed PGM header: {b' '.join(tokens)!r}") from e
    if width <= 0 or height <= 0:
        raise FormatError(f"Invalid PGM size: {width}x{height}")
    if not 0 < max_val <= MAX_16BIT:
        raise FormatError(f"Unsupported PGM max value: {max_val}")
    return width, height, max_val, pos


def _decode_pgm_binary(data):
    width, height, max_val, pos = _parse_pgm_header(data)
    # exactly one whitespace byte separates the header from the raster
    pos += 1
    sample_size = 1 if max_val <= MAX_8BIT else 2
    expected = width * height * sample_size
    available = len(data) - pos
    if available < expected:
        raise TruncatedDataError(
            f"PGM declares {width}x{height} ({expected} bytes) but only {max(available, 0)} bytes remain"
        )
    dtype = np.uint8 if sample_size == 1 else np.dtype(">u2")
    img_array = np.frombuffer(data, dtype=dtype, count=width * height, offset=pos)
    img_array = img_array.reshape((height, width))
    if sample_size == 2:
        img_array = img_array.astype(np.uint16)
    if int(img_array.max()) > max_val:
        raise FormatError(f"PGM sample exceeds max value {max_val}")
    return RasterImage(width=width, height=height, channels=1, max_value=max_val, pixels=img_array)


def _decode_pgm_ascii(data):
    width, height, max_val, pos = _parse_pgm_header(data)
    samples = data[pos:].split()
    if len(samples) < width * height:
        raise TruncatedDataError(
            f"PGM declares {width}x{height} samples but only {len(samples)} are present"
        )
    try:
        values = [int(s) for s in samples[:width * height]]
    except ValueError as e:
        raise FormatError("PGM raster contains a non-numeric sample") from e
    img_array = np.array(values, dtype=np.int64).reshape((height, width))
    if img_array.min() < 0 or img_array.max() > max_val:
        raise FormatError(f"PGM sample outside 0..{max_val}")
    dtype = np.uint8 if max_val <= MAX_8BIT else np.uint16
    return RasterImage(width=width, height=height, channels=1, max_value=max_val,
                       pixels=img_array.astype(dtype))


def _decode_png(data):
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, SyntaxError, OSError, EOFError, ValueError) as e:
        # a complete stream ends with the IEND chunk (type + CRC)
        if data[-8:-4] != b"IEND":
            raise TruncatedDataError(f"PNG data is truncated: {e}") from e
        raise FormatError(f"Cannot decode PNG: {e}") from e

    color_key = None
    if img.mode in ("L", "RGB", "I;16", "I;16B", "I"):
        # tRNS colour key: pixels equal to it are transparent
        color_key = img.info.get("transparency")
    if img.mode in ("P", "PA"):
        has_alpha = img.mode == "PA" or "transparency" in img.info
        img = img.convert("RGBA" if has_alpha else "RGB")
    if img.mode not in _PNG_MODES:
        raise FormatError(f"Unsupported PNG mode: {img.mode}")
    convert_to, channels = _PNG_MODES[img.mode]
    if convert_to:
        img = img.convert(convert_to)

    img_array = np.array(img)
    if img_array.dtype == np.uint8:
        max_val = MAX_8BIT
    else:
        img_array = np.clip(img_array, 0, MAX_16BIT).astype(np.uint16)
        max_val = MAX_16BIT
    height, width = img_array.shape[:2]
    img_array = img_array.reshape((height, width, channels))
    if color_key is not None:
        opaque = np.any(img_array != np.asarray(color_key).reshape(-1), axis=2)
        alpha = np.where(opaque, max_val, 0).astype(img_array.dtype)
        img_array = np.dstack((img_array, alpha))
        channels += 1
    return RasterImage(width=width, height=height, channels=channels, max_value=max_val,
                       pixels=img_array.reshape((height, width, channels)))


def _encode_pgm(image):
    if image.channels != 1:
        raise FormatError(f"PGM supports a single gray channel, got {image.channels}")
    header = f"P5\n{Config.PGM_CREATOR}\n{image.width} {image.height}\n{image.max_value}\n"
    pixels = image.pixels[:, :, 0]
    if image.max_value <= MAX_8BIT:
        body = pixels.astype(np.uint8).tobytes()
    else:
        body = pixels.astype(">u2").tobytes()
    return header.encode("ascii") + body


def _encode_png(image):
    pixels = image.pixels
    if image.max_value > MAX_8BIT:
        if image.channels != 1:
            raise FormatError("16-bit PNG output supports a single gray channel only")
        img_array = pixels[:, :, 0].astype(np.uint16)
    elif image.max_value != MAX_8BIT:
        # rescale samples to the full 8-bit range
        img_array = np.round(pixels.astype(np.float64) * MAX_8BIT / image.max_value).astype(np.uint8)
    else:
        img_array = pixels.astype(np.uint8)
    if img_array.ndim == 3 and img_array.shape[2] == 1:
        img_array = img_array[:, :, 0]

    buf = io.BytesIO()
    Image.fromarray(img_array).save(buf, format="PNG", compress_level=Config.PNG_COMPRESS_LEVEL)
    return buf.getvalue()


_DECODERS = {
    PGM_ASCII_MAGIC: _decode_pgm_ascii,
    PGM_BINARY_MAGIC: _decode_pgm_binary,
    PNG_SIGNATURE: _decode_png,
}

_ENCODERS = {
    RasterFormat.PGM: _encode_pgm,
    RasterFormat.PNG: _encode_png,
}


class RasterCodec:
    """ラスタ画像（PGM / PNG）の読み書きを行うクラス"""

    @staticmethod
    def detect_format(data):
        """先頭のマジックナンバーからフォーマットを判定"""
        if data.startswith(PNG_SIGNATURE):
            return RasterFormat.PNG
        if data[:2] in (PGM_ASCII_MAGIC, PGM_BINARY_MAGIC):
            return RasterFormat.PGM
        raise FormatError(f"Unrecognized raster header: {bytes(data[:8])!r}")

    @staticmethod
    def decode(data):
        """バイト列をRasterImageにデコード"""
        data = bytes(data)
        if RasterCodec.detect_format(data) is RasterFormat.PNG:
            magic = PNG_SIGNATURE
        else:
            magic = data[:2]
        image = _DECODERS[magic](data)
        logger.debug(f"Decoded raster: {image.width}x{image.height}, "
                     f"channels: {image.channels}, max value: {image.max_value}")
        return image

    @staticmethod
    def encode(image, fmt=Config.DEFAULT_FORMAT):
        """RasterImageを指定フォーマットのバイト列にエンコード"""
        try:
            fmt = RasterFormat.from_name(fmt)
        except ValueError as e:
            raise FormatError(str(e)) from e
        return _ENCODERS[fmt](image)

    @staticmethod
    def read(file_path):
        """画像ファイルの読み込み
        Parameters:
            file_path (str): 読み込む画像ファイルのパス
        """
        try:
            with open(file_path, 'rb') as f:
                data = f.read()
        except OSError as e:
            raise MapIOError(f"Cannot read raster file ({e.strerror})", file_path) from e
        return RasterCodec.decode(data)
