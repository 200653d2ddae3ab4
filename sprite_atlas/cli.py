import argparse
import json
from pathlib import Path
from . import __version__
from . import config
from . import log
from .compositor import check_output_format
from .generate_atlas import DATA_FORMATS, create_atlas
from .log import set_level
from .split_atlas import read_key_map, split_atlas
from .utils import AtlasError

log = log.setup_logging(config.log_level, config.log_file)


def get_parser():
    parser = argparse.ArgumentParser(
        prog="sprite-atlas",
        description="将目录中的图片裁剪、去重并打包为图集",
    )
    parser.add_argument("-i", "--input", required=True, help="输入目录")
    parser.add_argument("-o", "--output", required=True, help="输出路径（不含扩展名）")
    parser.add_argument("-f", "--format", help="图片格式 (png / webp)")
    parser.add_argument("-m", "--manifest", help="清单文件，相对于输入目录")
    parser.add_argument(
        "-c", "--compress", action="store_true", help="将帧名称压缩为哈希"
    )
    parser.add_argument("-d", "--data-format", choices=DATA_FORMATS, help="数据文件格式")
    parser.add_argument("-s", "--setting", help="用户配置文件 (JSON)")
    parser.add_argument("--log-level", help="日志等级")
    parser.add_argument("--version", action="version", version=__version__)
    return parser


def get_split_parser():
    parser = argparse.ArgumentParser(
        prog="sprite-atlas-split",
        description="根据图集数据文件拆分出原始图片",
    )
    parser.add_argument("-i", "--input", required=True, help="图集数据文件 (JSON或Lua)")
    parser.add_argument("-o", "--output", required=True, help="输出目录")
    parser.add_argument("-k", "--keys", help="压缩帧名称的对应表")
    parser.add_argument("--log-level", help="日志等级")
    return parser


def apply_setting(args):
    """加载用户配置并设置日志等级，失败时返回 False"""
    if getattr(args, "setting", None):
        try:
            config.load_setting(args.setting)
        except (OSError, json.JSONDecodeError) as e:
            log.error(f"❌ 无法读取配置文件 {args.setting}: {e}")
            return False

    try:
        set_level(str(args.log_level or config.log_level).upper())
    except ValueError as e:
        log.error(f"❌ 无效的日志等级: {e}")
        return False

    return True


def main(argv=None):
    args = get_parser().parse_args(argv)

    if not apply_setting(args):
        return 1

    input_path = Path(args.input).resolve()
    output_path = Path(args.output).resolve()

    if not input_path.is_dir():
        log.error(f"❌ 输入目录不存在: {input_path}")
        return 1

    try:
        output_format = check_output_format(
            args.format or config.setting["generate_atlas"]["output_format"]
        )
    except TypeError as e:
        log.error(f"❌ {e}")
        return 1

    try:
        create_atlas(
            input_path,
            output_path,
            output_format=output_format,
            manifest=args.manifest,
            compress=args.compress,
            data_format=args.data_format,
        )
    except AtlasError as e:
        log.error(f"❌ {e}")
        return 1

    return 0


def split_main(argv=None):
    args = get_split_parser().parse_args(argv)

    if not apply_setting(args):
        return 1

    try:
        key_map = read_key_map(args.keys) if args.keys else None
        split_atlas(Path(args.input).resolve(), Path(args.output).resolve(), key_map)
    except AtlasError as e:
        log.error(f"❌ {e}")
        return 1

    return 0
