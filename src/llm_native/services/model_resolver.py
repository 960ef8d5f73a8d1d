"""
模型解析器

把用户输入（别名、规范ID或文件路径）解析为规范模型ID和模型文件定位符。
"""

import logging

from ..core import catalog
from ..core.models import (
    CUSTOM_MODEL_REPO,
    FALLBACK_CONTEXT_LENGTH,
    FALLBACK_LANGUAGES,
    ModelDescriptor,
    ThinkingMode,
)


logger = logging.getLogger(__name__)

HF_URI_SCHEME = "hf:"


class ModelResolver:
    """模型解析器"""

    def resolve(self, raw: str) -> str:
        """
        解析模型引用

        匹配别名和规范ID时不区分大小写；两者都不匹配时原样返回，
        视为本地文件路径或完整URI。

        Args:
            raw: 别名、规范ID或文件路径

        Returns:
            str: 规范模型ID，或原始输入
        """
        key = raw.lower()

        target = catalog.resolve_alias(key)
        if target is not None:
            logger.debug(f"别名 {raw} 解析为 {target}")
            return target

        if catalog.lookup_by_id(key) is not None:
            return key

        return raw

    def get_artifact_uri(self, model_id: str) -> str:
        """
        获取模型文件定位符

        目录中的模型返回 hf:<repo>/<file>，否则模型ID本身就是路径或URI。
        """
        descriptor = catalog.lookup_by_id(model_id)
        if descriptor is None:
            return model_id
        return f"{HF_URI_SCHEME}{descriptor.repo}/{descriptor.file}"

    def describe(self, model_id: str) -> ModelDescriptor:
        """
        获取模型信息，目录外的模型合成一个保守的描述，从不失败

        Args:
            model_id: 已解析的模型ID

        Returns:
            ModelDescriptor: 模型信息
        """
        descriptor = catalog.lookup_by_id(model_id)
        if descriptor is not None:
            return descriptor

        return ModelDescriptor(
            id=model_id,
            name=model_id,
            repo=CUSTOM_MODEL_REPO,
            file=model_id,
            parameters="unknown",
            quantization="unknown",
            context_length=FALLBACK_CONTEXT_LENGTH,
            languages=FALLBACK_LANGUAGES,
            description="Custom model",
        )

    def get_thinking_mode(self, model_id: str) -> ThinkingMode:
        """获取模型家族的思考模式标记"""
        return self.describe(model_id).thinking_mode
