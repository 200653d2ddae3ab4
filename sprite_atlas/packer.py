from dataclasses import dataclass, field
from typing import Any, List
from . import config
from . import log
from .utils import Rectangle, Size, AtlasError

log = log.setup_logging(config.log_level, config.log_file)

MINAREA = "min_area"  # 最小面积策略标识


@dataclass
class PackedRect:
    """打包结果：width/height 为提交时的尺寸，rotated 时实际占用区域宽高互换"""

    x: int
    y: int
    width: int
    height: int
    rotated: bool
    token: Any

    @property
    def footprint(self):
        if self.rotated:
            return Rectangle(self.x, self.y, self.height, self.width)
        return Rectangle(self.x, self.y, self.width, self.height)


@dataclass
class Page:
    index: int
    width: int
    height: int
    rects: List[PackedRect] = field(default_factory=list)

    @property
    def size(self):
        return Size(self.width, self.height)


class TexturePacker:
    """纹理打包器，使用MaxRects算法进行矩形排列"""

    def __init__(
        self, width, height, border=0, padding=0, allow_rotation=True, reserve=None
    ):
        """
        初始化打包器

        Args:
            width: 打包区域宽度
            height: 打包区域高度
            border: 图集边界留白
            padding: 矩形之间的间距（已计入待排列矩形的尺寸）
            allow_rotation: 是否允许旋转90度
            reserve: 可选的左上角保留区域尺寸 Size
        """
        self.width = width
        self.height = height
        self.allow_rotation = allow_rotation
        self.used_rectangles = []  # 已使用的矩形区域列表
        # 初始空闲区域，考虑边界留白，最右/最下一列的间距可以超出边界
        self.free_rectangles = [
            Rectangle(
                border,
                border,
                width - 2 * border + padding,
                height - 2 * border + padding,
            )
        ]

        # 预先占用左上角区域
        if reserve:
            used = Rectangle(border, border, reserve.w + padding, reserve.h + padding)
            self.split_free_rectangle(self.free_rectangles[0], used, 0)
            self.used_rectangles.append(used)

    def fit(self, rectangles):
        """
        使用MaxRects算法排列矩形

        Args:
            rectangles: 待排列的矩形列表，格式为[(id, width, height), ...]

        Returns:
            results: 排列结果列表，格式为[(rect_id, Rectangle, rotated), ...]
        """
        results = []

        if not rectangles:
            return results

        # 最短边（用于剔除无法再使用的空闲区域）
        min_side = max(1, min(min(w, h) for _, w, h in rectangles))

        # 遍历所有矩形进行排列
        for rect_id, w, h in rectangles:
            # 寻找最佳放置位置
            d = self.find_position(w, h, min_side)

            if d:
                rect, in_free_rect, free_rect_idx, rotated = d

                # 分割剩余空间
                self.split_free_rectangle(in_free_rect, rect, free_rect_idx)

                # 合并相邻的空闲区域
                self.free_rectangles = self.merge_free_rectangles(self.free_rectangles)

                # 记录已使用的矩形
                self.used_rectangles.append(rect)
                results.append((rect_id, rect, rotated))

        return results

    def find_position(self, width, height, min_side):
        """
        寻找最佳放置位置，允许旋转时同时尝试宽高互换

        Args:
            width: 矩形宽度
            height: 矩形高度
            min_side: 所有待排列矩形的最短边

        Returns:
            最佳放置信息 (矩形, 所在空闲区域, 空闲区域索引, 是否旋转) 或 None
        """
        orientations = [(width, height, False)]
        if self.allow_rotation and width != height:
            orientations.append((height, width, True))

        new_free_rectangles = []
        best_score = None  # 最佳分数（越小越好）
        best = None

        # 遍历所有空闲区域
        for free_rect in self.free_rectangles:
            # 删除过小的空闲区域
            if free_rect.w < min_side or free_rect.h < min_side:
                continue

            new_free_rectangles.append(free_rect)

            for w, h, rotated in orientations:
                # 跳过无法容纳当前矩形的区域
                if free_rect.w < w or free_rect.h < h:
                    continue

                # 面积相同时优先不旋转
                score = (self.calculate_score(free_rect, MINAREA), rotated)

                if best_score is None or score < best_score:
                    best_score = score
                    best = (
                        Rectangle(free_rect.x, free_rect.y, w, h),
                        free_rect,
                        len(new_free_rectangles) - 1,
                        rotated,
                    )

        # 更新空闲区域列表
        self.free_rectangles = new_free_rectangles

        return best

    def calculate_score(self, rect, strategy):
        """
        计算矩形区域的分数

        Args:
            rect: 矩形区域
            strategy: 评分策略

        Returns:
            score: 分数值
        """
        if strategy == MINAREA:
            return rect.w * rect.h  # 使用面积作为评分

        return 0

    def split_free_rectangle(self, free_rect, used_rect, free_rect_idx):
        """
        分割空闲区域

        Args:
            free_rect: 原始空闲区域
            used_rect: 已使用的区域（位于空闲区域左上角）
            free_rect_idx: 空闲区域索引
        """
        right = None
        bottom = None

        # 检查右侧是否还有剩余空间
        if used_rect.right != free_rect.right:
            right = Rectangle(
                used_rect.right,
                free_rect.y,
                free_rect.right - used_rect.right,
                free_rect.h,
            )

        # 检查下方是否还有剩余空间
        if used_rect.bottom != free_rect.bottom:
            bottom = Rectangle(
                used_rect.x,
                used_rect.bottom,
                used_rect.w,
                free_rect.bottom - used_rect.bottom,
            )

        # 处理分割后的区域
        if right and bottom:
            # 调整区域边界避免重叠
            if right.w * right.h < free_rect.w * bottom.h:
                right, bottom = Rectangle(
                    right.x,
                    right.y,
                    right.w,
                    right.h - bottom.h,
                ), Rectangle(bottom.x, bottom.y, free_rect.w, bottom.h)

            # 更新空闲区域列表
            self.free_rectangles[free_rect_idx] = right
            self.free_rectangles.append(bottom)
        elif right:
            self.free_rectangles[free_rect_idx] = right
        elif bottom:
            self.free_rectangles[free_rect_idx] = bottom
        else:
            del self.free_rectangles[free_rect_idx]

    def merge_free_rectangles(self, rectangles):
        """
        合并相邻的空闲矩形

        Args:
            rectangles: 待合并的矩形列表

        Returns:
            合并后的矩形列表
        """
        changed = True

        # 循环合并直到没有变化
        while changed and rectangles:
            changed = False
            rectangles.sort(key=lambda r: (r.y, r.x))  # 按位置排序

            i = 0
            while i < len(rectangles):
                j = i + 1

                # 尝试与后续矩形合并
                while j < len(rectangles):
                    merged_rect = self.try_merge_rectangles(rectangles[i], rectangles[j])

                    if merged_rect:
                        rectangles[i] = merged_rect
                        del rectangles[j]
                        changed = True
                    else:
                        j += 1

                i += 1

        return rectangles

    def try_merge_rectangles(self, rect1, rect2):
        """
        尝试合并两个矩形

        Returns:
            合并后的矩形或None（如果无法合并）
        """
        # 水平合并：Y坐标和高度相同，且rect1右侧紧邻rect2左侧
        if rect1.y == rect2.y and rect1.h == rect2.h and rect1.right == rect2.x:
            return Rectangle(rect1.x, rect1.y, rect1.w + rect2.w, rect1.h)

        # 垂直合并：X坐标和宽度相同，且rect1下方紧邻rect2上方
        if rect1.x == rect2.x and rect1.w == rect2.w and rect1.bottom == rect2.y:
            return Rectangle(rect1.x, rect1.y, rect1.w, rect1.h + rect2.h)

        return None


def parse_sizes(sizes):
    """将配置中的尺寸 (整数或 [w, h]) 转换为按面积升序的 Size 列表"""
    result = []

    for s in sizes:
        if isinstance(s, (list, tuple)):
            result.append(Size(int(s[0]), int(s[1])))
        else:
            result.append(Size(int(s), int(s)))

    if not result:
        raise AtlasError("没有可用的图集尺寸")

    return sorted(result, key=lambda s: (s.w * s.h, s.w))


class AtlasPacker:
    """
    多页打包器

    先用 add() 提交全部矩形，再调用一次 pack() 得到所有页面。
    """

    def __init__(
        self, sizes=None, border=None, padding=None, allow_rotation=None, reserve=None
    ):
        setting = config.setting["generate_atlas"]

        self.reserve = reserve

        self.sizes = parse_sizes(sizes if sizes is not None else setting["sizes"])
        self.border = setting["border"] if border is None else border
        self.padding = setting["padding"] if padding is None else padding
        self.allow_rotation = (
            setting["allow_rotation"] if allow_rotation is None else allow_rotation
        )
        self.requests = []

    def add(self, width, height, token):
        """提交一个待排列的矩形"""
        if width <= 0 or height <= 0:
            raise AtlasError(f"无效的矩形尺寸: {width}x{height}")

        self.requests.append((width, height, token))

    def pack(self):
        """
        排列所有已提交的矩形

        Returns:
            pages: Page 列表，放不下一页时自动分页
        """
        # 按面积降序排列，面积相同时保持提交顺序
        order = sorted(
            range(len(self.requests)),
            key=lambda i: -(self.requests[i][0] * self.requests[i][1]),
        )
        rectangles = [
            (i, self.requests[i][0] + self.padding, self.requests[i][1] + self.padding)
            for i in order
        ]

        for i, w, h in rectangles:
            if not self.fits_page(w, h):
                width, height, _ = self.requests[i]
                largest = self.sizes[-1]
                raise AtlasError(
                    f"图片尺寸 {width}x{height} 超出最大图集尺寸 {largest.w}x{largest.h}"
                )

        pages = []

        while rectangles:
            index = len(pages)
            size, results = self.calculate_optimal_size(rectangles)

            if not results:
                raise AtlasError(f"无法在第{index}页放置任何图片")

            page = Page(index, size.w, size.h)

            for rect_id, rect, rotated in results:
                width, height, token = self.requests[rect_id]
                page.rects.append(PackedRect(rect.x, rect.y, width, height, rotated, token))

            placed = {r[0] for r in results}
            rectangles = [r for r in rectangles if r[0] not in placed]

            log.info(f"🏁 第{index}页尺寸: {size.w}x{size.h}, 放置{len(results)}张图片")

            pages.append(page)

        return pages

    def fits_page(self, w, h):
        largest = self.sizes[-1]
        room_w = largest.w - 2 * self.border + self.padding
        room_h = largest.h - 2 * self.border + self.padding

        if w <= room_w and h <= room_h:
            return True

        return self.allow_rotation and h <= room_w and w <= room_h

    def calculate_optimal_size(self, rectangles):
        """
        计算最优的图集尺寸：选取能容纳全部矩形的最小尺寸，
        都放不下时使用最大尺寸，剩余矩形进入下一页

        Returns:
            best_size: 最佳尺寸
            results: 该尺寸下的排列结果
        """
        results = []

        for size in self.sizes:
            packer = TexturePacker(
                size.w,
                size.h,
                self.border,
                self.padding,
                self.allow_rotation,
                self.reserve,
            )
            results = packer.fit(rectangles)

            if len(results) == len(rectangles):
                return size, results

        return self.sizes[-1], results


def pack_textures(textures, packer=None):
    """
    为每个唯一纹理提交一个矩形并执行打包

    Args:
        textures: 唯一纹理列表
        packer: 可选的 AtlasPacker，默认按配置创建

    Returns:
        pages: Page 列表，PackedRect.token 为对应纹理
    """
    packer = packer or AtlasPacker()

    for texture in textures:
        packer.add(texture.width, texture.height, texture)

    return packer.pack()
