import json
from pathlib import Path
from lupa import LuaRuntime

base_path = Path(__file__).parent

setting_file = base_path / "setting.json"
lupa = LuaRuntime(unpack_returned_tuples=True)
setting = {}

log_level = "INFO"
log_file = None

with open(setting_file, "r", encoding="utf-8") as f:
    data = json.load(f)

    setting = data

log_level = setting["main"].get("log_level") or log_level
log_file = setting["main"].get("log_file")


def load_setting(file):
    """
    读取用户配置文件并按分区合并到默认配置

    Args:
        file: 用户配置文件路径 (JSON)

    Returns:
        合并后的配置字典
    """
    global log_level, log_file

    with open(file, "r", encoding="utf-8") as f:
        user_setting = json.load(f)

    for key, value in user_setting.items():
        if isinstance(value, dict) and isinstance(setting.get(key), dict):
            setting[key].update(value)
        else:
            setting[key] = value

    log_level = setting["main"].get("log_level") or log_level
    log_file = setting["main"].get("log_file")

    return setting
