"""
推理后端接口

定义推理后端（provider → 已加载模型 → 推理上下文）的通用接口。
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..core.models import SamplingParams


# 流式输出单元：(文本片段, 结束原因)，结束原因只在最后一个片段上出现
StreamChunk = Tuple[str, Optional[str]]


class BaseInferenceContext(ABC):
    """推理上下文：持有权重和KV缓存，依赖已加载的模型"""

    @property
    @abstractmethod
    def context_size(self) -> int:
        """上下文长度（token）"""
        pass

    @abstractmethod
    def stream_chat(self, messages: List[Dict[str, str]], sampling: SamplingParams) -> Iterator[StreamChunk]:
        """
        流式对话补全（阻塞迭代器，由调用方放到工作线程执行）

        Args:
            messages: role/content 形式的消息列表
            sampling: 采样参数

        Yields:
            StreamChunk: 文本片段和结束原因
        """
        pass

    @abstractmethod
    def count_tokens(self, text: str) -> int:
        """统计文本的token数量"""
        pass

    @abstractmethod
    async def dispose(self) -> None:
        """释放上下文，重复调用应无副作用"""
        pass


class BaseLoadedModel(ABC):
    """已加载的模型文件"""

    def __init__(self, model_path: str):
        self.model_path = model_path

    @abstractmethod
    async def create_context(self, context_size: Optional[int] = None) -> BaseInferenceContext:
        """创建推理上下文"""
        pass

    @abstractmethod
    async def dispose(self) -> None:
        """释放模型，重复调用应无副作用"""
        pass

    def get_model_info(self) -> Dict[str, Any]:
        """获取模型信息"""
        return {"path": self.model_path}


class BaseInferenceProvider(ABC):
    """推理后端"""

    @abstractmethod
    async def load_model(self, model_path: str, gpu_layers: int) -> BaseLoadedModel:
        """
        加载模型文件

        Args:
            model_path: 本地模型文件路径
            gpu_layers: 卸载到GPU的层数（-1 = 全部）

        Raises:
            ModelLoadError: 文件不存在、格式不支持或内存不足
        """
        pass
