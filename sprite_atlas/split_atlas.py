import json
from pathlib import Path
from PIL import Image
from . import config
from . import log
from .manifest import decompress_keys, read_data
from .utils import AtlasError, ManifestError

log = log.setup_logging(config.log_level, config.log_file)

setting = config.setting["split_atlas"]


def read_key_map(file):
    """读取压缩帧名称时保存的对应表"""
    try:
        with open(file, "r", encoding="utf-8") as f:
            key_map = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ManifestError(f"无法读取名称对应表 {file}: {e}") from e

    if not isinstance(key_map, dict):
        raise ManifestError(f"无效的名称对应表: {file}")

    return key_map


def get_frame_image(frame, meta):
    """获取帧所在页面的图片文件名"""
    if frame.get("image"):
        return frame["image"]

    page = frame.get("page")
    for p in meta.get("pages", []):
        if p.get("id") == page:
            return p["image"]

    return meta["image"]


def gen_png_from_frame(atlas_image, frame):
    """
    根据帧数据从图集中提取并还原单个精灵图片

    Process:
        1. 裁剪图集中的区域（旋转时宽高互换）
        2. 旋转的精灵逆时针旋转90度还原
        3. 粘贴到原始尺寸的透明画布上
    """
    x, y, w, h = (int(frame["frame"][k]) for k in ("x", "y", "w", "h"))
    rotated = frame.get("rotated", False)

    # 计算在图集中的裁剪框
    if rotated:
        box = (x, y, x + h, y + w)
    else:
        box = (x, y, x + w, y + h)

    rect_on_big = atlas_image.crop(box)

    # 如果精灵被旋转，执行逆时针90度旋转
    if rotated:
        rect_on_big = rect_on_big.transpose(Image.Transpose.ROTATE_90)

    source_size = frame["sourceSize"]
    offset = frame["spriteSourceSize"]

    # 创建原始尺寸的透明背景图像
    result_image = Image.new(
        "RGBA", (int(source_size["w"]), int(source_size["h"])), (0, 0, 0, 0)
    )
    # 将裁剪的精灵粘贴到正确位置
    result_image.paste(rect_on_big, (int(offset["x"]), int(offset["y"])))

    return result_image


def get_output_file(output_path, name):
    """帧名称对应的输出文件，禁止写出到输出目录之外"""
    output_file = output_path / name

    if output_file.suffix.lower() not in setting["image_suffixes"]:
        output_file = output_file.with_name(output_file.name + ".png")

    if not output_file.resolve().is_relative_to(output_path.resolve()):
        raise AtlasError(f"帧名称超出输出目录: {name}")

    return output_file


def split_atlas(data_file, output_path, key_map=None):
    """
    将图集拆分为原始图片

    Args:
        data_file: 图集数据文件 (JSON或Lua)
        output_path: 输出目录
        key_map: 压缩帧名称时的对应表，可选

    Returns:
        生成的文件路径列表
    """
    data_file = Path(data_file)
    output_path = Path(output_path)
    data = read_data(data_file)

    if key_map:
        data = decompress_keys(data, key_map)

    atlas_images = {}
    output_files = []

    try:
        for name, frame in data["frames"].items():
            image_name = get_frame_image(frame, data["meta"])

            if image_name not in atlas_images:
                atlas_file = data_file.parent / image_name

                if not atlas_file.exists():
                    raise AtlasError(f"图集不存在: {image_name}")

                with Image.open(atlas_file) as img:
                    atlas_images[image_name] = img.convert("RGBA")

            result_image = gen_png_from_frame(atlas_images[image_name], frame)

            output_file = get_output_file(output_path, name)
            output_file.parent.mkdir(parents=True, exist_ok=True)

            if output_file.suffix.lower() in (".jpg", ".jpeg"):
                result_image = result_image.convert("RGB")

            result_image.save(output_file)
            output_files.append(output_file)

            log.debug(f"🖼️ 生成图像: {output_file.name}")
    finally:
        for img in atlas_images.values():
            img.close()

    log.info(f"✅ 图集拆分完毕: {data_file.name}, {len(output_files)}张图片")

    return output_files
