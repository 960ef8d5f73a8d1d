"""
llama.cpp推理后端

使用llama-cpp-python库实现GGUF模型的加载和流式对话补全。
"""

import asyncio
import logging
import os
from typing import Any, Dict, Iterator, List, Optional

try:
    from llama_cpp import Llama
except ImportError:
    Llama = None

from .base import BaseInferenceContext, BaseInferenceProvider, BaseLoadedModel, StreamChunk
from ..core.exceptions import InferenceError, ModelLoadError
from ..core.models import SamplingParams


logger = logging.getLogger(__name__)

# 未指定上下文长度时的上限，避免128K模型一次性分配巨大的KV缓存
MAX_DEFAULT_CONTEXT_SIZE = 8192


class LlamaCppContext(BaseInferenceContext):
    """llama.cpp推理上下文（完整的Llama实例）"""

    def __init__(self, llm: "Llama"):
        self.llm = llm

    @property
    def context_size(self) -> int:
        return self.llm.n_ctx() if self.llm is not None else 0

    def stream_chat(self, messages: List[Dict[str, str]], sampling: SamplingParams) -> Iterator[StreamChunk]:
        if self.llm is None:
            raise InferenceError("推理上下文已释放，无法进行推理")

        stream = self.llm.create_chat_completion(
            messages=messages,
            max_tokens=sampling.max_tokens,
            temperature=sampling.temperature,
            top_p=sampling.top_p,
            top_k=sampling.top_k,
            repeat_penalty=sampling.repeat_penalty,
            stop=list(sampling.stop) or None,
            stream=True,
        )

        for output in stream:
            if 'error' in output:
                raise InferenceError(f"推理过程中出现错误: {output['error']}")

            choices = output.get('choices') or []
            if not choices:
                continue

            choice = choices[0]
            # 第一个片段只有role，没有content
            text_chunk = (choice.get('delta') or {}).get('content') or ""
            finish_reason = choice.get('finish_reason')
            if text_chunk or finish_reason:
                yield text_chunk, finish_reason

    def count_tokens(self, text: str) -> int:
        if self.llm is None:
            return 0
        return len(self.llm.tokenize(text.encode('utf-8'), add_bos=False, special=True))

    async def dispose(self) -> None:
        if self.llm is None:
            return
        llm, self.llm = self.llm, None
        await asyncio.to_thread(llm.close)
        logger.debug("推理上下文已释放")


class LlamaCppModel(BaseLoadedModel):
    """
    已打开的GGUF模型

    只加载词表和元数据（vocab_only），权重在创建上下文时加载。
    """

    def __init__(self, model_path: str, gpu_layers: int, vocab: "Llama"):
        super().__init__(model_path)
        self.gpu_layers = gpu_layers
        self._vocab = vocab
        self.metadata: Dict[str, str] = dict(getattr(vocab, 'metadata', None) or {})

    @property
    def trained_context_length(self) -> Optional[int]:
        """GGUF元数据中的训练上下文长度"""
        arch = self.metadata.get('general.architecture')
        value = self.metadata.get(f"{arch}.context_length") if arch else None
        try:
            return int(value) if value is not None else None
        except ValueError:
            return None

    def _default_context_size(self) -> int:
        trained = self.trained_context_length
        if trained is None:
            return MAX_DEFAULT_CONTEXT_SIZE
        return min(trained, MAX_DEFAULT_CONTEXT_SIZE)

    async def create_context(self, context_size: Optional[int] = None) -> LlamaCppContext:
        """
        创建推理上下文

        Args:
            context_size: 上下文长度覆盖值，None时使用模型训练长度（有上限）

        Raises:
            ModelLoadError: 权重加载或上下文分配失败
        """
        if self._vocab is None:
            raise ModelLoadError("模型已释放，无法创建上下文")

        n_ctx = context_size or self._default_context_size()
        logger.info(f"创建推理上下文: n_ctx={n_ctx}, n_gpu_layers={self.gpu_layers}")

        try:
            llm = await asyncio.to_thread(
                Llama,
                model_path=self.model_path,
                n_ctx=n_ctx,
                n_gpu_layers=self.gpu_layers,
                verbose=False,  # 减少日志输出
                use_mmap=True,  # 使用内存映射提高加载速度
                use_mlock=False,  # 不锁定内存，允许系统管理
            )
        except Exception as e:
            error_msg = f"创建推理上下文失败: {str(e)}"
            logger.error(error_msg)
            raise ModelLoadError(error_msg) from e

        return LlamaCppContext(llm)

    async def dispose(self) -> None:
        if self._vocab is None:
            return
        vocab, self._vocab = self._vocab, None
        await asyncio.to_thread(vocab.close)
        logger.debug("模型已释放")

    def get_model_info(self) -> Dict[str, Any]:
        info = super().get_model_info()
        info.update({
            "type": "GGUF",
            "gpu_layers": self.gpu_layers,
            "architecture": self.metadata.get('general.architecture'),
            "trained_context_length": self.trained_context_length,
        })
        return info


class LlamaCppProvider(BaseInferenceProvider):
    """llama.cpp推理后端"""

    def __init__(self):
        # 检查llama-cpp-python是否可用
        if Llama is None:
            raise ModelLoadError(
                "llama-cpp-python库未安装。请运行: pip install llama-cpp-python"
            )

    async def load_model(self, model_path: str, gpu_layers: int) -> LlamaCppModel:
        """
        打开GGUF模型文件并读取元数据

        Args:
            model_path: 模型文件路径
            gpu_layers: 卸载到GPU的层数

        Raises:
            ModelLoadError: 模型加载失败
        """
        if not os.path.exists(model_path):
            error_msg = f"模型文件未找到: {model_path}"
            logger.error(error_msg)
            raise ModelLoadError(error_msg)

        logger.info(f"开始加载GGUF模型: {model_path}")
        try:
            vocab = await asyncio.to_thread(
                Llama,
                model_path=model_path,
                vocab_only=True,
                verbose=False,
            )
        except Exception as e:
            error_msg = f"GGUF模型加载失败: {str(e)}"
            logger.error(error_msg)
            raise ModelLoadError(error_msg) from e

        return LlamaCppModel(model_path, gpu_layers, vocab)


async def acquire_provider() -> LlamaCppProvider:
    """获取默认的推理后端实例"""
    return LlamaCppProvider()
