from . import config
from . import log

log = log.setup_logging(config.log_level, config.log_file)


def dedupe_textures(candidates):
    """
    合并像素完全相同的纹理

    按输入顺序逐个与已收录的纹理比较，第一个相等的纹理作为代表。

    Args:
        candidates: [(path, SpriteTexture), ...]，应已按路径排序

    Returns:
        unique: 去重后的纹理列表（首次出现顺序）
        mapping: {path: 代表纹理}
    """
    unique = []
    mapping = {}

    for path, texture in candidates:
        for accepted in unique:
            if accepted.equals(texture):
                mapping[path] = accepted
                log.debug(f"♻️ 跳过重复图片 {path}")
                break
        else:
            unique.append(texture)
            mapping[path] = texture

    if len(unique) < len(mapping):
        log.info(f"♻️ 去重: {len(mapping)}张图片, {len(unique)}个唯一纹理")

    return unique, mapping
