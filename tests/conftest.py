"""
测试共享夹具

提供不加载真实模型的内存推理后端，记录各步骤的调用次数。
"""

from typing import Dict, Iterator, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from llm_native.core.config import ConfigManager
from llm_native.core.models import SamplingParams
from llm_native.inferencers.base import (
    BaseInferenceContext,
    BaseInferenceProvider,
    BaseLoadedModel,
    StreamChunk,
)


class FakeContext(BaseInferenceContext):
    """按预设片段输出的推理上下文"""

    def __init__(self, chunks: Optional[List[str]] = None, finish_reason: str = "stop",
                 error: Optional[Exception] = None):
        self.chunks = ["Hello", ", ", "world"] if chunks is None else chunks
        self.finish_reason = finish_reason
        self.error = error
        self.calls: List[tuple] = []
        self.dispose_count = 0

    @property
    def context_size(self) -> int:
        return 4096

    def stream_chat(self, messages: List[Dict[str, str]], sampling: SamplingParams) -> Iterator[StreamChunk]:
        self.calls.append((messages, sampling))
        return self._stream()

    def _stream(self) -> Iterator[StreamChunk]:
        for chunk in self.chunks:
            yield chunk, None
            if self.error is not None:
                raise self.error
        yield "", self.finish_reason

    def count_tokens(self, text: str) -> int:
        return len(text.split())

    @property
    def last_messages(self) -> List[Dict[str, str]]:
        return self.calls[-1][0]

    @property
    def last_sampling(self) -> SamplingParams:
        return self.calls[-1][1]

    async def dispose(self) -> None:
        self.dispose_count += 1


class FakeModel(BaseLoadedModel):
    """记录上下文创建次数的模型"""

    def __init__(self, model_path: str, context: FakeContext, context_error: Optional[Exception] = None):
        super().__init__(model_path)
        self.context = context
        self.context_error = context_error
        self.context_sizes: List[Optional[int]] = []
        self.dispose_count = 0

    async def create_context(self, context_size: Optional[int] = None) -> FakeContext:
        self.context_sizes.append(context_size)
        if self.context_error is not None:
            raise self.context_error
        return self.context

    async def dispose(self) -> None:
        self.dispose_count += 1


class FakeProvider(BaseInferenceProvider):
    """记录加载次数的推理后端"""

    def __init__(self, context: Optional[FakeContext] = None):
        self.context = context or FakeContext()
        self.load_calls: List[tuple] = []
        self.load_error: Optional[Exception] = None
        self.context_error: Optional[Exception] = None
        self.models: List[FakeModel] = []

    async def load_model(self, model_path: str, gpu_layers: int) -> FakeModel:
        self.load_calls.append((model_path, gpu_layers))
        if self.load_error is not None:
            raise self.load_error
        model = FakeModel(model_path, self.context, self.context_error)
        self.models.append(model)
        return model


@pytest.fixture
def fake_context():
    return FakeContext()


@pytest.fixture
def fake_provider(fake_context):
    return FakeProvider(fake_context)


@pytest.fixture
def provider_factory(fake_provider):
    """返回 fake_provider 的协程工厂，acquire_count 记录获取次数"""
    async def factory():
        factory.acquire_count += 1
        return fake_provider

    factory.acquire_count = 0
    return factory


@pytest.fixture
def artifact_resolver():
    """原样返回定位符的模型文件解析器"""
    resolver = Mock()
    resolver.resolve = AsyncMock(side_effect=lambda uri, token=None: f"/cache/{uri}")
    return resolver


@pytest.fixture
def memory_manager():
    manager = Mock()
    manager.warn_if_insufficient.return_value = True
    manager.get_memory_usage.return_value = {
        "rss": 512 * 1024 * 1024,
        "vms": 1024 * 1024 * 1024,
        "percent": 3.2,
        "available": 8 * 1024 * 1024 * 1024,
    }
    return manager


@pytest.fixture
def config_manager(tmp_path):
    """隔离用户配置文件和环境变量的配置管理器"""
    return ConfigManager(config_dir=str(tmp_path / "config"), environ={})
