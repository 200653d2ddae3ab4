import hashlib
import io
from functools import cached_property
import numpy as np
from PIL import Image
from .utils import Bounds, Padding, Size, EmptySpriteError


def get_bounds(img):
    """
    计算图片中非透明像素的最小包围盒

    遍历整个Alpha通道，alpha != 0 的像素视为内容。

    Args:
        img: RGBA模式的PIL图片

    Returns:
        Bounds（包含边界），完全透明时返回None
    """
    alpha = np.asarray(img.getchannel("A"))

    rows = np.flatnonzero(alpha.any(axis=1))
    cols = np.flatnonzero(alpha.any(axis=0))

    if rows.size == 0:
        return None

    return Bounds(int(cols[0]), int(rows[0]), int(cols[-1]), int(rows[-1]))


class SpriteTexture:
    """
    裁剪掉透明边框后的精灵纹理

    两个纹理宽高相同且每个像素 (RGBA) 完全一致时视为相等，
    与对象本身无关。
    """

    def __init__(self, img, name=None):
        """
        Args:
            img: 解码后的PIL图片，非RGBA模式会先转换
            name: 来源名称，仅用于错误信息

        Raises:
            EmptySpriteError: 图片完全透明
        """
        if img.mode != "RGBA":
            img = img.convert("RGBA")

        bounds = get_bounds(img)

        if bounds is None:
            raise EmptySpriteError(f"图片完全透明，没有可打包的内容: {name or '<image>'}")

        self.source_size = Size(img.width, img.height)
        self.bounds = bounds
        self.padding = Padding(
            bounds.left,
            bounds.top,
            img.width - 1 - bounds.right,
            img.height - 1 - bounds.bottom,
        )
        self.image = img.crop(bounds.to_box())
        self.image.load()
        self.width = bounds.w
        self.height = bounds.h

    @classmethod
    def from_file(cls, file):
        """从文件解码并创建纹理"""
        with Image.open(file) as img:
            img.load()
            return cls(img, name=str(file))

    @property
    def size(self):
        return Size(self.width, self.height)

    @cached_property
    def pixels(self):
        """裁剪后的RGBA像素数组 (height, width, 4)"""
        return np.asarray(self.image)

    @cached_property
    def digest(self):
        """尺寸与像素内容的md5"""
        md5 = hashlib.md5(f"{self.width}x{self.height}".encode())
        md5.update(self.image.tobytes())
        return md5.hexdigest()

    @cached_property
    def surface(self):
        """用于合成图集的RGBA图层"""
        return self.image.copy()

    @cached_property
    def encoded(self):
        """单独导出用的PNG数据"""
        buffer = io.BytesIO()
        self.image.save(buffer, "PNG")
        return buffer.getvalue()

    def equals(self, other):
        """逐像素比较两个纹理"""
        if self is other:
            return True
        if self.width != other.width or self.height != other.height:
            return False
        if self.digest != other.digest:
            return False

        try:
            return bool(np.array_equal(self.pixels, other.pixels))
        except ValueError:
            return False

    def __eq__(self, other):
        if not isinstance(other, SpriteTexture):
            return NotImplemented
        return self.equals(other)

    def __hash__(self):
        return hash(self.digest)

    def __repr__(self):
        return f"SpriteTexture({self.width}x{self.height}, padding={tuple(self.padding)})"
