import copy
import hashlib
import json
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import List, Optional
from lupa import LuaError
from . import __version__
from . import config
from . import log
from .texture import SpriteTexture
from .utils import (
    ManifestError,
    Padding,
    Point,
    Size,
    glob_match,
    lua_to_python,
    to_lua,
)

log = log.setup_logging(config.log_level, config.log_file)

setting = config.setting["generate_atlas"]


@dataclass
class FrameRule:
    """清单中的帧规则：匹配路径后覆盖名称和/或锚点"""

    path: str
    anchor: Optional[Point] = None
    name: Optional[str] = None


@dataclass
class Sprite:
    """
    每个源文件对应一个精灵

    texture 为去重后的代表纹理，可能被多个精灵共享；
    padding 和 source_size 来自精灵自身的裁剪结果。
    """

    path: str
    name: str
    texture: SpriteTexture
    padding: Padding
    source_size: Size
    anchor: Point
    rules: List[int] = field(default_factory=list)


def read_manifest(file):
    """
    读取清单文件，支持JSON和Lua（返回一个表）

    Raises:
        ManifestError: 文件无法读取或格式错误
    """
    file = Path(file)

    try:
        with open(file, "r", encoding="utf-8-sig") as f:
            content = f.read()
    except OSError as e:
        raise ManifestError(f"无法读取清单文件 {file}: {e}") from e

    if file.suffix == ".lua":
        try:
            data = lua_to_python(config.lupa.execute(content))
        except LuaError as e:
            raise ManifestError(f"Lua清单解析失败 {file.name}: {e}") from e
    else:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ManifestError(f"JSON清单解析失败 {file.name}: {e}") from e

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise ManifestError(f"清单必须是对象: {file.name}")

    return data


def parse_anchor(value, where):
    """将 [x, y] 或 {x, y} 转换为 Point 并检查范围"""
    if isinstance(value, dict):
        value = [value.get("x"), value.get("y")]

    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise ManifestError(f"{where}: 锚点必须是 [x, y]")

    x, y = value

    for v in (x, y):
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ManifestError(f"{where}: 锚点必须是数字")
        if not 0 <= v <= 1:
            raise ManifestError(f"{where}: 锚点必须在 [0, 1] 范围内")

    return Point(x, y)


def parse_frame_rules(rules):
    """
    解析清单中的 frames 规则列表

    Returns:
        FrameRule 列表，保持声明顺序
    """
    result = []

    for i, rule in enumerate(rules or []):
        where = f"frames[{i}]"

        if not isinstance(rule, dict) or not isinstance(rule.get("path"), str):
            raise ManifestError(f"{where}: 缺少 path")

        anchor = rule.get("anchor")
        name = rule.get("name")

        if name is not None and not isinstance(name, str):
            raise ManifestError(f"{where}: name 必须是字符串")

        result.append(
            FrameRule(
                path=rule["path"],
                anchor=parse_anchor(anchor, where) if anchor is not None else None,
                name=name,
            )
        )

    return result


def format_name(template, path):
    """用路径字段填充名称模板：path, dir, file, stem, ext"""
    p = PurePosixPath(path)
    fields = {
        "path": path,
        "dir": "" if str(p.parent) == "." else str(p.parent),
        "file": p.name,
        "stem": p.stem,
        "ext": p.suffix,
    }

    try:
        return template.format(**fields)
    except (KeyError, IndexError, ValueError) as e:
        raise ManifestError(f"无效的名称模板 {template!r}: {e}") from e


def resolve_sprites(candidates, mapping, rules, default_anchor=None):
    """
    为每个源文件创建精灵，并应用帧规则

    规则按声明顺序依次应用，名称和锚点分别覆盖，
    因此对每个字段来说最后一个匹配的规则生效。

    Args:
        candidates: [(path, SpriteTexture), ...]，纹理为文件自身的裁剪结果
        mapping: 去重结果 {path: 代表纹理}
        rules: FrameRule 列表
        default_anchor: 默认锚点

    Returns:
        精灵列表，顺序与 candidates 一致

    Raises:
        ManifestError: 重命名后出现重复名称
    """
    if default_anchor is None:
        default_anchor = setting["default_anchor"]
    default_anchor = Point(*default_anchor)

    sprites = []
    names = {}

    for path, texture in candidates:
        name = path
        anchor = default_anchor
        matched = []

        for i, rule in enumerate(rules):
            if not glob_match(rule.path, path):
                continue

            matched.append(i)

            if rule.name is not None:
                name = format_name(rule.name, path)
            if rule.anchor is not None:
                anchor = rule.anchor

        if name in names:
            raise ManifestError(f"帧名称重复: {name} ({names[name]}, {path})")
        names[name] = path

        sprites.append(
            Sprite(
                path=path,
                name=name,
                texture=mapping[path],
                padding=texture.padding,
                source_size=texture.source_size,
                anchor=anchor,
                rules=matched,
            )
        )

    return sprites


def frame_record(rect, sprite, page_index, image):
    """生成单个精灵的帧数据"""
    texture = rect.token
    padding = sprite.padding

    return {
        "frame": {"x": rect.x, "y": rect.y, "w": texture.width, "h": texture.height},
        "rotated": rect.rotated,
        "trimmed": True,
        "spriteSourceSize": {
            "x": padding.left,
            "y": padding.top,
            "w": texture.width,
            "h": texture.height,
        },
        "sourceSize": {
            "w": texture.width + padding.left + padding.right,
            "h": texture.height + padding.top + padding.bottom,
        },
        "anchor": {"x": sprite.anchor.x, "y": sprite.anchor.y},
        "page": page_index,
        "image": image,
    }


def build_frames(pages, sprites, page_files):
    """
    为每个精灵生成帧数据，重复图片共用同一个打包位置

    Returns:
        {name: 帧数据}，按精灵顺序排列
    """
    by_texture = {}
    for sprite in sprites:
        by_texture.setdefault(sprite.texture, []).append(sprite)

    frames = {}

    for page in pages:
        image = Path(page_files[page.index]).name

        for rect in page.rects:
            for sprite in by_texture.get(rect.token, []):
                frames[sprite.name] = frame_record(rect, sprite, page.index, image)

    return {s.name: frames[s.name] for s in sprites if s.name in frames}


def resolve_animations(animations, sprites):
    """
    根据帧规则解析动画帧列表

    每条规则按精灵顺序收集名称匹配的精灵，多条规则的结果按规则顺序拼接。
    没有匹配任何帧的动画只输出警告。

    Returns:
        {动画名: [帧名, ...]}
    """
    result = {}

    if not animations:
        return result

    if not isinstance(animations, dict):
        raise ManifestError("animations 必须是对象")

    for anim_name, anim_data in animations.items():
        rules = anim_data.get("frames", []) if isinstance(anim_data, dict) else anim_data

        if isinstance(rules, dict) and not rules:
            rules = []

        if not isinstance(rules, list):
            raise ManifestError(f"animations.{anim_name}: frames 必须是列表")

        frames = []

        for i, rule in enumerate(rules):
            pattern = rule.get("path") if isinstance(rule, dict) else rule

            if not isinstance(pattern, str):
                raise ManifestError(f"animations.{anim_name}.frames[{i}]: 缺少 path")

            frames.extend(s.name for s in sprites if glob_match(pattern, s.name))

        if not frames:
            log.warning(f"⚠️ 动画 {anim_name} 没有匹配到任何帧")

        result[anim_name] = frames

    return result


def build_document(pages, sprites, animations, page_files, white_rect=None):
    """
    生成图集数据文档

    Args:
        pages: Page 列表
        sprites: 精灵列表
        animations: resolve_animations 的结果
        page_files: 每页图片的路径
        white_rect: 可选的白色块区域 (x, y, w, h)

    Returns:
        dict: {"frames", "animations", "meta"}
    """
    page_names = [Path(f).name for f in page_files]

    meta = {
        "app": "sprite-atlas",
        "version": __version__,
        "image": page_names[0] if page_names else None,
        "format": "RGBA8888",
        "size": {"w": pages[0].width, "h": pages[0].height} if pages else None,
        "scale": 1,
        "pages": [
            {
                "id": page.index,
                "image": page_names[page.index],
                "size": {"w": page.width, "h": page.height},
            }
            for page in pages
        ],
    }

    if white_rect:
        x, y, w, h = white_rect
        meta["whiteRect"] = {"x": x, "y": y, "w": w, "h": h}

    return {
        "frames": build_frames(pages, sprites, page_files),
        "animations": animations,
        "meta": meta,
    }


def frame_hash(image, name, record, length):
    payload = json.dumps(
        [image, name, record], sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )
    return hashlib.md5(payload.encode("utf-8")).hexdigest()[:length]


def compress_keys(document, hash_length=None):
    """
    将帧名称替换为内容哈希，动画中的引用同步替换

    Returns:
        compressed: 新的文档
        key_map: {哈希: 原名称}
    """
    hash_length = hash_length or setting["hash_length"]
    image = document["meta"].get("image")

    key_map = {}
    renamed = {}

    for name, record in document["frames"].items():
        key = frame_hash(image, name, record, hash_length)

        if key in key_map:
            raise ManifestError(f"帧名称哈希冲突: {key_map[key]}, {name}")

        key_map[key] = name
        renamed[name] = key

    compressed = {
        "frames": {
            renamed[name]: copy.deepcopy(record)
            for name, record in document["frames"].items()
        },
        "animations": {
            anim: [renamed[name] for name in frames]
            for anim, frames in document["animations"].items()
        },
        "meta": copy.deepcopy(document["meta"]),
    }

    return compressed, key_map


def decompress_keys(document, key_map):
    """使用保存的对应表将哈希名称还原为原名称"""

    def restore(key):
        if key not in key_map:
            raise ManifestError(f"对应表中没有帧名称: {key}")
        return key_map[key]

    return {
        "frames": {
            restore(key): copy.deepcopy(record)
            for key, record in document["frames"].items()
        },
        "animations": {
            anim: [restore(key) for key in frames]
            for anim, frames in document["animations"].items()
        },
        "meta": copy.deepcopy(document["meta"]),
    }


def write_json_data(data, file, pretty=None):
    pretty = setting["pretty"] if pretty is None else pretty

    with open(file, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2 if pretty else None, ensure_ascii=False)

    log.info(f"✅ 生成数据文件: {Path(file).name}")


def write_lua_data(data, file):
    """生成Lua格式的图集数据文件"""
    with open(file, "w", encoding="utf-8") as f:
        f.write(f"return {to_lua(data)}\n")

    log.info(f"✅ 生成数据文件: {Path(file).name}")


def read_data(file):
    """读取JSON或Lua格式的图集数据文件"""
    data = read_manifest(file)

    for key in ("frames", "meta"):
        if not isinstance(data.get(key), dict):
            raise ManifestError(f"无效的图集数据文件: {Path(file).name}")

    if not isinstance(data.get("animations"), dict):
        data["animations"] = {}

    return data
