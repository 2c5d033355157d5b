"""
口语评测引擎 - 配置加载模块

负责加载和管理配置文件。所有评分阈值都以模块常量作为默认值，
可通过配置文件中对应的点号键覆盖。
"""
import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# 默认配置文件路径
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "default.yaml"
# User config path (can be overridden by env var)
USER_CONFIG_PATH = Path(os.getenv("SPEAKSCORE_CONFIG_PATH", Path.home() / ".speakscore" / "config.yaml"))


class Config:
    """配置管理类"""

    _instance: "Config | None" = None
    _data: dict[str, Any] = {}

    def __new__(cls) -> "Config":
        """单例模式"""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def load(self, config_path: Path | None = None) -> None:
        """
        加载配置文件

        优先加载指定的 config_path。
        如果未指定，则加载默认配置，并尝试合并用户配置。
        """
        # 1. 内置默认值
        self._data = self._get_default_config()

        # 2. 如果有默认配置文件，覆盖内置默认值
        if DEFAULT_CONFIG_PATH.exists():
            with open(DEFAULT_CONFIG_PATH, encoding="utf-8") as f:
                default_file_data = yaml.safe_load(f) or {}
                self._merge_config(self._data, default_file_data)

        # 3. 如果指定了配置文件，加载并覆盖
        if config_path:
            if config_path.exists():
                with open(config_path, encoding="utf-8") as f:
                    custom_data = yaml.safe_load(f) or {}
                    self._merge_config(self._data, custom_data)
                logger.info(f"已加载自定义配置文件: {config_path}")
            else:
                logger.warning(f"指定配置文件不存在: {config_path}")

        # 4. 如果没指定配置文件，尝试加载用户配置 (~/.speakscore/config.yaml)
        elif USER_CONFIG_PATH.exists():
            try:
                with open(USER_CONFIG_PATH, encoding="utf-8") as f:
                    user_data = yaml.safe_load(f) or {}
                    self._merge_config(self._data, user_data)
                logger.info(f"已加载用户配置文件: {USER_CONFIG_PATH}")
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"加载用户配置失败: {e}")

    def update(self, updates: dict[str, Any]) -> None:
        """
        在内存中合并配置项（不写入磁盘）

        Args:
            updates: 要覆盖的配置项（嵌套字典）
        """
        self._merge_config(self._data, updates)

    def reset(self) -> None:
        """清空已加载的配置，恢复为各模块常量默认值"""
        self._data = {}

    def _merge_config(self, base: dict, update: dict) -> None:
        """递归合并配置字典"""
        for k, v in update.items():
            if k in base and isinstance(base[k], dict) and isinstance(v, dict):
                self._merge_config(base[k], v)
            else:
                base[k] = v

    def get(self, key: str, default: Any = None) -> Any:
        """
        获取配置值，支持点号分隔的嵌套键

        Args:
            key: 配置键，支持 "a.b.c" 格式
            default: 默认值

        Returns:
            配置值或默认值
        """
        keys = key.split(".")
        value = self._data

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def _get_default_config(self) -> dict[str, Any]:
        """返回内置默认配置（评分阈值见各模块常量）"""
        return {
            "audio": {
                "sample_rate": 16000,
                "frame_size": 2048,
            },
            "batch": {
                "default_jobs": 4,
                "max_jobs": 16,
            },
        }


# 全局配置实例
config = Config()


def load_config(config_path: Path | None = None) -> Config:
    """
    加载配置并返回配置实例

    Args:
        config_path: 配置文件路径

    Returns:
        配置实例
    """
    config.load(config_path)
    return config
