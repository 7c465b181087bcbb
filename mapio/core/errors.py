class MapError(Exception):
    """地図変換処理で発生するエラーの基底クラス"""


class MapIOError(MapError, IOError):
    """ファイルの読み書きに失敗した"""

    def __init__(self, message, path=None):
        super().__init__(f"{message}: {path}" if path else message)
        self.path = path


class FormatError(MapError, ValueError):
    """未対応の画像形式・ヘッダ"""


class TruncatedDataError(MapError, ValueError):
    """ヘッダで宣言されたサイズに対してデータが足りない"""


class ValidationError(MapError, ValueError):
    """パラメータ・メタデータの値が不正"""

    def __init__(self, field, message):
        super().__init__(f"Invalid {field}: {message}")
        self.field = field
