import re
from dataclasses import dataclass, astuple
from functools import lru_cache
from lupa import lua_type


class AtlasError(Exception):
    """图集生成失败"""


class EmptySpriteError(AtlasError):
    """图片完全透明，无法裁剪出有效区域"""


class SpriteDecodeError(AtlasError):
    """图片无法解码"""


class ManifestError(AtlasError):
    """清单文件无法读取或内容无效"""


@dataclass(frozen=True)
class Point:
    x: float
    y: float

    def __iter__(self):
        return iter(astuple(self))


@dataclass(frozen=True)
class Size:
    w: int
    h: int

    def __iter__(self):
        return iter(astuple(self))

    def __str__(self):
        return f"{{{self.w},{self.h}}}"


@dataclass(frozen=True)
class Rectangle:
    x: int
    y: int
    w: int
    h: int

    def __iter__(self):
        return iter(astuple(self))

    @property
    def right(self):
        return self.x + self.w

    @property
    def bottom(self):
        return self.y + self.h

    def intersects(self, other):
        return (
            self.x < other.right
            and other.x < self.right
            and self.y < other.bottom
            and other.y < self.bottom
        )


@dataclass(frozen=True)
class Bounds:
    """包含边界：left..right, top..bottom 都是像素索引"""

    left: int
    top: int
    right: int
    bottom: int

    def __iter__(self):
        return iter(astuple(self))

    @property
    def w(self):
        return self.right - self.left + 1

    @property
    def h(self):
        return self.bottom - self.top + 1

    def to_box(self):
        """转换为 Pillow crop 使用的半开区间 (left, top, right, bottom)"""
        return (self.left, self.top, self.right + 1, self.bottom + 1)


@dataclass(frozen=True)
class Padding:
    left: int
    top: int
    right: int
    bottom: int

    def __iter__(self):
        return iter(astuple(self))


LUA_KEYWORDS = {
    "and", "break", "do", "else", "elseif", "end", "false", "for", "function",
    "goto", "if", "in", "local", "nil", "not", "or", "repeat", "return", "then",
    "true", "until", "while",
}


def is_simple_key(key: str):
    """检查键名是否为简单标识符（只包含字母、数字、下划线，不以数字开头）"""
    if not key or key[0].isdigit() or key in LUA_KEYWORDS:
        return False
    return all(c.isascii() and (c.isalnum() or c == "_") for c in key)


@lru_cache(maxsize=None)
def compile_glob(pattern):
    """
    将glob模式转换为正则表达式

    `*` 与 `?` 不跨越目录分隔符，`**` 匹配任意层目录，
    `**/` 同时匹配零层目录。

    Args:
        pattern: glob模式字符串

    Returns:
        编译后的正则表达式
    """
    i, n = 0, len(pattern)
    parts = []

    while i < n:
        c = pattern[i]

        if c == "*":
            if pattern.startswith("**", i):
                if pattern.startswith("/", i + 2):
                    parts.append("(?:.*/)?")
                    i += 3
                else:
                    parts.append(".*")
                    i += 2
                continue
            parts.append("[^/]*")
        elif c == "?":
            parts.append("[^/]")
        elif c == "[":
            end = pattern.find("]", i + 2)
            if end == -1:
                parts.append(re.escape(c))
            else:
                body = pattern[i + 1 : end].replace("\\", "\\\\")
                if body.startswith("!"):
                    body = "^" + body[1:]
                parts.append(f"[{body}]")
                i = end + 1
                continue
        else:
            parts.append(re.escape(c))

        i += 1

    return re.compile("".join(parts))


def glob_match(pattern, path):
    """判断 POSIX 风格路径是否匹配glob模式"""
    return compile_glob(pattern).fullmatch(path) is not None


def lua_to_python(value):
    """
    递归将lupa返回的Lua表转换为Python数据结构

    键为 1..n 连续整数的表转换为列表，其余转换为字典，
    整数值的浮点数转换为int。
    """
    if isinstance(value, float) and value.is_integer():
        return int(value)

    if lua_type(value) != "table":
        return value

    keys = list(value.keys())

    if keys and all(isinstance(k, int) for k in keys):
        if sorted(keys) == list(range(1, len(keys) + 1)):
            return [lua_to_python(value[k]) for k in range(1, len(keys) + 1)]

    return {k: lua_to_python(v) for k, v in value.items()}


def indent(level):
    """生成指定层级的缩进字符串"""
    return "\t" * level


def lua_string(value):
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )
    return f'"{escaped}"'


def lua_key(key):
    if isinstance(key, str) and is_simple_key(key):
        return key
    if isinstance(key, str):
        return f"[{lua_string(key)}]"
    return f"[{key}]"


def to_lua(value, level=0):
    """
    递归将Python数据结构转换为Lua表达式字符串

    支持的数据类型：dict、list/tuple、str、bool、int/float、None

    Args:
        value: 要转换的值
        level: 当前缩进层级

    Returns:
        str: Lua表达式
    """
    if value is None:
        return "nil"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        return lua_string(value)

    if isinstance(value, dict):
        if not value:
            return "{}"
        content = ["{"]
        for k, v in value.items():
            content.append(f"{indent(level + 1)}{lua_key(k)} = {to_lua(v, level + 1)},")
        content.append(f"{indent(level)}}}")
        return "\n".join(content)

    if isinstance(value, (list, tuple)):
        if not value:
            return "{}"
        content = ["{"]
        for v in value:
            content.append(f"{indent(level + 1)}{to_lua(v, level + 1)},")
        content.append(f"{indent(level)}}}")
        return "\n".join(content)

    raise TypeError(f"无法转换为Lua的类型: {type(value).__name__}")
