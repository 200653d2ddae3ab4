import json
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional
from PIL import UnidentifiedImageError
from . import config
from . import log
from .compositor import check_output_format, get_page_files, write_pages
from .dedupe import dedupe_textures
from .manifest import (
    build_document,
    compress_keys,
    parse_frame_rules,
    read_manifest,
    resolve_animations,
    resolve_sprites,
    write_json_data,
    write_lua_data,
)
from .packer import AtlasPacker, Page, pack_textures
from .texture import SpriteTexture
from .utils import AtlasError, ManifestError, Size, SpriteDecodeError, glob_match

log = log.setup_logging(config.log_level, config.log_file)

setting = config.setting["generate_atlas"]

DATA_FORMATS = ("json", "lua")


@dataclass
class AtlasResult:
    document: Dict[str, Any]
    pages: List[Page]
    page_files: List[Path]
    data_file: Path
    key_map: Optional[Dict[str, str]] = None
    key_map_file: Optional[Path] = None


def get_sprite_paths(input_path, sources):
    """
    按glob模式收集输入目录中的图片

    Args:
        input_path: 输入目录
        sources: glob模式列表，相对于输入目录

    Returns:
        排序后的相对路径列表 (POSIX格式)
    """
    input_path = Path(input_path)

    if isinstance(sources, str):
        sources = [sources]

    paths = set()

    for file in input_path.rglob("*"):
        if not file.is_file():
            continue

        rel = file.relative_to(input_path).as_posix()

        if any(glob_match(pattern, rel) for pattern in sources):
            paths.add(rel)

    return sorted(paths)


def load_texture(input_path, rel_path):
    """解码单张图片并裁剪透明区域"""
    file = Path(input_path) / rel_path

    try:
        texture = SpriteTexture.from_file(file)
    except (UnidentifiedImageError, OSError) as e:
        raise SpriteDecodeError(f"无法解码图片 {rel_path}: {e}") from e

    log.debug(
        f"📖 加载图片  {rel_path} ({texture.source_size.w}x{texture.source_size.h}, "
        f"裁剪后{texture.width}x{texture.height})"
    )

    return rel_path, texture


def load_textures(input_path, rel_paths, workers=None):
    """
    并发加载所有图片，完成顺序不定，结果按路径重新排序

    任意一张图片失败时取消剩余任务并抛出异常。

    Returns:
        [(path, SpriteTexture), ...]
    """
    workers = workers or setting["workers"] or 1
    results = []

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(load_texture, input_path, p) for p in rel_paths]

        try:
            for future in as_completed(futures):
                results.append(future.result())
        except BaseException:
            for future in futures:
                future.cancel()
            raise

    results.sort(key=lambda r: r[0])

    log.info(f"📖 加载图片完毕: {len(results)}张")

    return results


def create_packer():
    """
    按配置创建打包器，开启白色块时预留左上角区域

    Returns:
        packer: AtlasPacker
        white_rect: 白色块区域 (x, y, w, h) 或 None
    """
    if not setting["add_white_rect"]:
        return AtlasPacker(), None

    w, h = setting["white_rect_size"]
    packer = AtlasPacker(reserve=Size(w, h))

    return packer, (packer.border, packer.border, w, h)


def create_atlas(
    input_path,
    output_path,
    output_format=None,
    manifest=None,
    compress=False,
    data_format=None,
):
    """
    生成图集：读取清单、加载图片、去重、打包、合成并写出数据文件

    Args:
        input_path: 图片所在目录
        output_path: 输出路径（不含扩展名）
        output_format: 图片格式 png / webp
        manifest: 清单文件路径，相对路径以输入目录为基准
        compress: 是否将帧名称压缩为哈希
        data_format: 数据文件格式 json / lua

    Returns:
        AtlasResult
    """
    output_format = check_output_format(output_format or setting["output_format"])
    data_format = (data_format or setting["data_format"]).lower()

    if data_format not in DATA_FORMATS:
        raise TypeError(f"不支持的数据格式: {data_format}，可选: {', '.join(DATA_FORMATS)}")

    input_path = Path(input_path)
    output_path = Path(output_path)

    if not input_path.is_dir():
        raise AtlasError(f"输入目录不存在: {input_path}")

    manifest_data = {}
    manifest_file = input_path / (manifest or setting["manifest"])

    if manifest_file.exists():
        manifest_data = read_manifest(manifest_file)
        log.info(f"📖 读取清单: {manifest_file.name}")
    elif manifest:
        raise ManifestError(f"清单文件不存在: {manifest_file}")

    rules = parse_frame_rules(manifest_data.get("frames"))
    sources = manifest_data.get("sources") or setting["default_sources"]

    rel_paths = get_sprite_paths(input_path, sources)

    if not rel_paths:
        raise AtlasError(f"没有找到匹配的图片: {input_path}")

    candidates = load_textures(input_path, rel_paths)

    unique, mapping = dedupe_textures(candidates)
    sprites = resolve_sprites(candidates, mapping, rules)
    animations = resolve_animations(manifest_data.get("animations"), sprites)

    packer, white_rect = create_packer()
    pages = pack_textures(unique, packer)

    page_files = get_page_files(output_path, len(pages), output_format)
    document = build_document(pages, sprites, animations, page_files, white_rect)

    key_map = None
    key_map_file = None

    if compress:
        document, key_map = compress_keys(document)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    write_pages(pages, output_path, output_format, white_rect)

    data_file = output_path.with_name(f"{output_path.name}.{data_format}")

    if data_format == "lua":
        write_lua_data(document, data_file)
    else:
        write_json_data(document, data_file)

    if key_map is not None and setting["write_key_map"]:
        key_map_file = output_path.with_name(f"{output_path.name}.keys.json")
        with open(key_map_file, "w", encoding="utf-8") as f:
            json.dump(key_map, f, indent=2, ensure_ascii=False)

    log.info(
        f"{output_path.name}图集生成完毕: {len(sprites)}张图片, "
        f"{len(unique)}个纹理, {len(pages)}页"
    )

    return AtlasResult(document, pages, page_files, data_file, key_map, key_map_file)
