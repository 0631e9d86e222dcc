"""
配置文件读写 (config/loader.py)

~/.picobot/config.json 使用 camelCase 键名（与 Telegram / OpenAI 的 JSON 风格一致），
Python 侧统一为 snake_case：读取时 convert_keys，写回时 convert_to_camel。
环境变量（PICOBOT_ 前缀）由 BaseSettings 在 model_validate 之外另行合并。

对于 Java 开发者：
- 相当于 Jackson 配合 PropertyNamingStrategies.LOWER_CAMEL_CASE 读写 POJO
"""

import json
import re
from pathlib import Path
from typing import Any

from loguru import logger

from picobot.config.schema import Config
from picobot.utils.helpers import get_data_path


def get_config_path() -> Path:
    return get_data_path() / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    读取配置文件。

    文件不存在时返回默认配置；JSON 损坏或校验失败（如 models.default 不在
    catalog 中）时记录警告并同样回退到默认配置，进程不会因此启动失败。
    """
    path = config_path or get_config_path()
    if not path.exists():
        return Config()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Config.model_validate(convert_keys(_migrate_config(data)))
    except (json.JSONDecodeError, ValueError) as e:
        logger.warning(f"Invalid config at {path}, falling back to defaults: {e}")
        return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """以 camelCase 键名、2 空格缩进写出完整配置。"""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(convert_to_camel(config.model_dump()), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )


def _migrate_config(data: dict) -> dict:
    """
    旧版配置格式迁移。

    早期版本把白名单放在 channels.telegram.allowFrom 下，
    现在统一提升为顶层的 access.allowFrom（鉴权与渠道无关）。
    """
    telegram = data.get("channels", {}).get("telegram", {})
    access = data.setdefault("access", {})
    if "allowFrom" in telegram and "allowFrom" not in access:
        access["allowFrom"] = telegram.pop("allowFrom")
    return data


def _rename_keys(data: Any, rename) -> Any:
    """递归地对字典的所有键应用 rename，列表逐项处理，其他值原样返回。"""
    if isinstance(data, dict):
        return {rename(k): _rename_keys(v, rename) for k, v in data.items()}
    if isinstance(data, list):
        return [_rename_keys(item, rename) for item in data]
    return data


def convert_keys(data: Any) -> Any:
    """camelCase 键 → snake_case 键，例: {"cacheTtl": 600} → {"cache_ttl": 600}"""
    return _rename_keys(data, camel_to_snake)


def convert_to_camel(data: Any) -> Any:
    """snake_case 键 → camelCase 键（保存配置时使用）。"""
    return _rename_keys(data, snake_to_camel)


_UPPER = re.compile(r"(?<!^)(?=[A-Z])")


def camel_to_snake(name: str) -> str:
    """例: "allowFrom" → "allow_from" """
    return _UPPER.sub("_", name).lower()


def snake_to_camel(name: str) -> str:
    """例: "history_window" → "historyWindow" """
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)
