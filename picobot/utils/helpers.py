"""
工具函数 - 数据目录、时间戳换算、日志预览截断。
"""

from datetime import datetime
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """目录不存在时递归创建，返回原路径便于链式使用。"""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """picobot 数据目录 ~/.picobot（配置文件、CLI 输入历史）。"""
    return ensure_dir(Path.home() / ".picobot")


def epoch_millis(moment: datetime) -> int:
    """
    转换为 Unix 毫秒时间戳。

    不带时区的 datetime 按本地时间解释（与 datetime.timestamp() 一致）。
    """
    return int(moment.timestamp() * 1000)


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """超过 max_len 时截断并追加 suffix（结果长度含后缀）。"""
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix
