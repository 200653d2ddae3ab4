from PIL import Image


def make_image(size, box=None, color=(255, 0, 0, 255)):
    """透明画布，box (left, top, right, bottom) 区域填充颜色"""
    img = Image.new("RGBA", size, (0, 0, 0, 0))
    if box:
        img.paste(color, box)
    return img


def save_image(img, path):
    path.parent.mkdir(parents=True, exist_ok=True)
    img.save(path)
    return path


def image_bytes(path):
    with Image.open(path) as img:
        return img.convert("RGBA").tobytes()
