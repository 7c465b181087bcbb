import argparse
import sys

from .core.conversion_service import ConversionService
from .core.errors import MapError
from .utils.config import Config
from .utils.constants import CellState
from .utils.logger import setup_logger


def build_parser():
    parser = argparse.ArgumentParser(
        prog="mapio",
        description="Load occupancy maps from image + YAML files and save them back.",
    )
    parser.add_argument("--log-level", default=Config.DEFAULT_LOG_LEVEL,
                        help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--log-file", default=None, help="write logs to this file")
    commands = parser.add_subparsers(dest="command", required=True)

    info = commands.add_parser("info", help="print a summary of a map")
    info.add_argument("map_yaml", help="map descriptor (YAML)")

    convert = commands.add_parser("convert", help="load a map and save it again")
    convert.add_argument("map_yaml", help="map descriptor (YAML)")
    convert.add_argument("output_base", help="output path without extension")
    convert.add_argument("--format", default=Config.DEFAULT_FORMAT,
                         choices=Config.SUPPORTED_IMAGE_FORMATS)
    convert.add_argument("--occupied-thresh", type=float, default=Config.DEFAULT_OCCUPIED_THRESH)
    convert.add_argument("--free-thresh", type=float, default=Config.DEFAULT_FREE_THRESH)
    return parser


def show_info(args, logger):
    """地図の概要をログに出力"""
    grid = ConversionService.load_map(args.map_yaml)
    counts = grid.counts()
    logger.info(f"Size: {grid.width}x{grid.height}, resolution: {grid.resolution} m/cell")
    logger.info(f"Origin: x={grid.origin.x}, y={grid.origin.y}, theta={grid.origin.theta}")
    logger.info(f"Cells: free={counts[CellState.FREE]}, occupied={counts[CellState.OCCUPIED]}, "
                f"unknown={counts[CellState.UNKNOWN]}")
    return 0


def convert_map(args, logger):
    """地図を読み込み、指定フォーマットで保存"""
    grid = ConversionService.load_map(args.map_yaml)
    saved = ConversionService.save(
        grid,
        args.output_base,
        args.format,
        occupied_thresh=args.occupied_thresh,
        free_thresh=args.free_thresh,
    )
    logger.info(f"Wrote {saved.raster_file} and {saved.metadata_file}")
    return 0


COMMANDS = {
    "info": show_info,
    "convert": convert_map,
}


def main(argv=None):
    """アプリケーションのメインエントリーポイント"""
    args = build_parser().parse_args(argv)
    logger = setup_logger(args.log_level, args.log_file)
    try:
        return COMMANDS[args.command](args, logger)
    except MapError as e:
        logger.error(f"Error in {args.command}: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
