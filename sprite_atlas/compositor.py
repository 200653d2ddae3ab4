from pathlib import Path
from PIL import Image, ImageDraw, features
from . import config
from . import log

log = log.setup_logging(config.log_level, config.log_file)

OUTPUT_FORMATS = {"png": "PNG", "webp": "WEBP"}


def check_output_format(output_format):
    """
    检查输出格式是否受支持

    Raises:
        TypeError: 不支持的格式，或当前Pillow未编译WebP支持
    """
    name = str(output_format or "").lower().lstrip(".")

    if name not in OUTPUT_FORMATS:
        raise TypeError(
            f"不支持的输出格式: {output_format}，可选: {', '.join(OUTPUT_FORMATS)}"
        )

    if name == "webp" and not features.check("webp"):
        raise TypeError("当前Pillow不支持WebP编码")

    return name


def get_page_files(output, page_count, output_format):
    """
    生成每页图片的文件路径，多页时追加 _页号 后缀

    Args:
        output: 输出路径（不含扩展名）
        page_count: 页数
        output_format: 输出格式

    Returns:
        文件路径列表
    """
    output = Path(output)

    if page_count > 1:
        return [
            output.with_name(f"{output.name}_{i}.{output_format}")
            for i in range(page_count)
        ]

    return [output.with_name(f"{output.name}.{output_format}")]


def compose_page(page, white_rect=None):
    """
    合成单页图集

    Args:
        page: Page，rect.token 为 SpriteTexture
        white_rect: 可选的白色块区域 (x, y, w, h)

    Returns:
        合成后的RGBA图片
    """
    atlas = Image.new("RGBA", (page.width, page.height), (0, 0, 0, 0))

    # 将所有图片粘贴到图集上
    for rect in page.rects:
        surface = rect.token.surface

        # 旋转的图片顺时针旋转90度后粘贴
        if rect.rotated:
            surface = surface.transpose(Image.Transpose.ROTATE_270)

        atlas.paste(surface, (rect.x, rect.y))

    # 在左上角添加白色像素（用于纯色绘制，如血条）
    if white_rect:
        x, y, w, h = white_rect
        draw = ImageDraw.Draw(atlas)
        draw.rectangle([x, y, x + w - 1, y + h - 1], "white", None, 0)

    return atlas


def save_page(img, file, output_format):
    """以无损、最高质量保存图片"""
    if output_format == "webp":
        img.save(file, "WEBP", lossless=True, quality=100, method=6, exact=True)
    else:
        img.save(file, OUTPUT_FORMATS[output_format], optimize=True)

    log.info(f"✅ 保存为{output_format}: {Path(file).name}")


def write_pages(pages, output, output_format, white_rect=None):
    """
    合成并保存所有页面

    Returns:
        保存的文件路径列表，顺序与页面一致
    """
    output_format = check_output_format(output_format)
    files = get_page_files(output, len(pages), output_format)

    images = [compose_page(page, white_rect) for page in pages]

    for img, file in zip(images, files):
        file.parent.mkdir(parents=True, exist_ok=True)
        save_page(img, file, output_format)

    return files
