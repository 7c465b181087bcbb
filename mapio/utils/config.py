class Config:
    """変換処理の既定値"""

    # Map defaults
    DEFAULT_RESOLUTION = 0.05
    DEFAULT_OCCUPIED_THRESH = 0.65
    DEFAULT_FREE_THRESH = 0.1
    DEFAULT_NEGATE = False
    DEFAULT_ORIGIN = (0.0, 0.0, 0.0)
    DEFAULT_FRAME_ID = "map"

    # File formats
    DEFAULT_FORMAT = "pgm"
    DESCRIPTOR_SUFFIX = ".yaml"
    SUPPORTED_IMAGE_FORMATS = ["pgm", "png"]
    FILE_MODE = 0o666  # masked by the process umask

    # Encoder settings (fixed so that output bytes are reproducible)
    PNG_COMPRESS_LEVEL = 6
    PGM_CREATOR = "# CREATOR: mapio"

    # Logging
    LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
    DEFAULT_LOG_LEVEL = "INFO"
