"""
配置管理

解析引擎配置：显式参数 > 配置文件 > 环境变量（仅访问令牌）> 内置默认值。
解析只在引擎构造时进行一次。
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .models import ALL_GPU_LAYERS, EngineConfig
from .validators import ParameterValidator
from .exceptions import ConfigurationError


logger = logging.getLogger(__name__)

# HuggingFace访问令牌的环境变量，按顺序查找
TOKEN_ENV_VARS = ("HF_TOKEN", "HUGGING_FACE_HUB_TOKEN")


class ConfigManager:
    """配置管理器"""

    ENGINE_SECTION = "engine"
    ENGINE_KEYS = ("gpu_layers", "context_size", "hf_token", "enable_thinking")

    def __init__(self, config_dir: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
        """
        初始化配置管理器

        Args:
            config_dir: 配置目录，默认 ~/.llm_native
            environ: 环境变量映射，默认 os.environ
        """
        if config_dir is None:
            config_dir = os.path.expanduser("~/.llm_native")

        self.config_dir = Path(config_dir)
        self.config_file = self.config_dir / "config.json"
        self.environ = os.environ if environ is None else environ
        self.validator = ParameterValidator()

    def save_config(self, config: Dict[str, Any]) -> None:
        """保存配置到文件"""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, 'w', encoding='utf-8') as f:
            json.dump(config, f, indent=2, ensure_ascii=False)

    def load_config(self) -> Dict[str, Any]:
        """从文件加载配置，文件不存在时返回空配置"""
        if not self.config_file.exists():
            return {}

        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"配置文件格式错误: {self.config_file}: {e}") from e

        if not isinstance(config, dict):
            raise ConfigurationError(f"配置文件顶层必须是对象: {self.config_file}")
        return config

    def get_engine_defaults(self) -> Dict[str, Any]:
        """读取配置文件中的引擎默认值"""
        section = self.load_config().get(self.ENGINE_SECTION, {})
        if not isinstance(section, dict):
            raise ConfigurationError(f"配置项 '{self.ENGINE_SECTION}' 必须是对象")

        unknown = set(section) - set(self.ENGINE_KEYS)
        if unknown:
            logger.warning(f"忽略未知的引擎配置项: {sorted(unknown)}")
        return {k: v for k, v in section.items() if k in self.ENGINE_KEYS}

    def resolve_token(self, explicit: Optional[str], file_value: Optional[str] = None) -> Optional[str]:
        """
        解析HuggingFace访问令牌

        Args:
            explicit: 显式传入的令牌
            file_value: 配置文件中的令牌

        Returns:
            Optional[str]: 令牌，均未设置时返回None
        """
        if explicit:
            return explicit
        if file_value:
            return file_value
        for name in TOKEN_ENV_VARS:
            value = self.environ.get(name)
            if value:
                logger.debug(f"使用环境变量 {name} 中的访问令牌")
                return value
        return None

    def build_engine_config(
        self,
        model: str,
        gpu_layers: Optional[int] = None,
        context_size: Optional[int] = None,
        hf_token: Optional[str] = None,
        enable_thinking: Optional[bool] = None,
    ) -> EngineConfig:
        """
        构建并验证引擎配置

        Args:
            model: 模型ID、别名或GGUF文件路径
            gpu_layers: 卸载到GPU的层数（-1 = 全部，0 = 仅CPU）
            context_size: 上下文长度覆盖值
            hf_token: HuggingFace访问令牌
            enable_thinking: 是否启用思考模式

        Returns:
            EngineConfig: 只读引擎配置

        Raises:
            ConfigurationError: 配置无效
        """
        defaults = self.get_engine_defaults()

        def pick(value, key, fallback):
            if value is not None:
                return value
            return defaults.get(key, fallback)

        config = EngineConfig(
            model=model,
            gpu_layers=pick(gpu_layers, "gpu_layers", ALL_GPU_LAYERS),
            context_size=pick(context_size, "context_size", None),
            hf_token=self.resolve_token(hf_token, defaults.get("hf_token")),
            enable_thinking=pick(enable_thinking, "enable_thinking", False),
        )

        is_valid, errors = self.validator.validate_engine_config(config)
        if not is_valid:
            raise ConfigurationError(f"引擎配置无效: {'; '.join(errors)}")

        return config
