"""
引擎生命周期控制器测试
"""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from llm_native.core.exceptions import ArtifactResolutionError, EngineStateError, ModelLoadError
from llm_native.core.models import ChatHistoryItem, EngineConfig, EngineStatus
from llm_native.services.engine_lifecycle import EngineLifecycle


QWEN3_URI = "hf:unsloth/Qwen3-8B-GGUF/Qwen3-8B-Q4_K_M.gguf"


class TestEngineLifecycle:
    """引擎生命周期测试类"""

    @pytest.fixture(autouse=True)
    def setup_lifecycle(self, fake_provider, provider_factory, artifact_resolver, memory_manager):
        """测试前准备"""
        self.provider = fake_provider
        self.provider_factory = provider_factory
        self.artifact_resolver = artifact_resolver
        self.memory_manager = memory_manager

    def make_lifecycle(self, **config):
        config.setdefault("model", "qwen3")
        return EngineLifecycle(
            EngineConfig(**config),
            provider_factory=self.provider_factory,
            artifact_resolver=self.artifact_resolver,
            memory_manager=self.memory_manager,
        )

    def test_initial_state(self):
        """测试初始状态"""
        lifecycle = self.make_lifecycle()

        assert lifecycle.status is EngineStatus.UNINITIALIZED
        assert lifecycle.handles is None
        assert lifecycle.model_id == "qwen3-8b"
        with pytest.raises(EngineStateError, match="引擎未就绪"):
            lifecycle.session

    @pytest.mark.asyncio
    async def test_initialize(self):
        """测试初始化"""
        lifecycle = self.make_lifecycle()

        await lifecycle.initialize()

        assert lifecycle.status is EngineStatus.READY
        assert lifecycle.handles.provider is self.provider
        assert lifecycle.handles.context is self.provider.context
        assert lifecycle.session is lifecycle.handles.session
        assert lifecycle.model_path == f"/cache/{QWEN3_URI}"
        assert self.provider.load_calls == [(f"/cache/{QWEN3_URI}", -1)]
        self.artifact_resolver.resolve.assert_awaited_once_with(QWEN3_URI, None)
        self.memory_manager.warn_if_insufficient.assert_called_once_with(f"/cache/{QWEN3_URI}")

    @pytest.mark.asyncio
    async def test_initialize_logs_context_and_memory(self, caplog):
        """测试就绪时记录上下文长度、模型信息和内存使用"""
        lifecycle = self.make_lifecycle()

        with caplog.at_level(logging.DEBUG, logger="llm_native.services.engine_lifecycle"):
            await lifecycle.initialize()

        assert "上下文长度 4096" in caplog.text
        assert f"'path': '/cache/{QWEN3_URI}'" in caplog.text
        assert "进程内存: 512MB" in caplog.text
        assert "可用内存: 8192MB" in caplog.text
        self.memory_manager.get_memory_usage.assert_called_once_with()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("calls", [1, 2, 5])
    async def test_initialize_is_idempotent(self, calls):
        """测试重复初始化只加载一次"""
        lifecycle = self.make_lifecycle()

        for _ in range(calls):
            await lifecycle.initialize()

        assert self.provider_factory.acquire_count == 1
        assert len(self.provider.load_calls) == 1
        assert self.provider.models[0].context_sizes == [None]

    @pytest.mark.asyncio
    async def test_concurrent_initialize_loads_once(self):
        """测试并发初始化只加载一次"""
        lifecycle = self.make_lifecycle()

        await asyncio.gather(lifecycle.initialize(), lifecycle.ensure_initialized(), lifecycle.initialize())

        assert lifecycle.status is EngineStatus.READY
        assert len(self.provider.load_calls) == 1

    @pytest.mark.asyncio
    async def test_ensure_initialized(self):
        """测试按需初始化"""
        lifecycle = self.make_lifecycle()

        await lifecycle.ensure_initialized()
        await lifecycle.ensure_initialized()

        assert lifecycle.status is EngineStatus.READY
        assert len(self.provider.load_calls) == 1

    @pytest.mark.asyncio
    async def test_token_and_options_forwarded(self):
        """测试访问令牌、GPU层数和上下文长度下发"""
        lifecycle = self.make_lifecycle(hf_token="hf_secret", gpu_layers=12, context_size=2048)

        await lifecycle.initialize()

        self.artifact_resolver.resolve.assert_awaited_once_with(QWEN3_URI, "hf_secret")
        assert self.provider.load_calls[0][1] == 12
        assert self.provider.models[0].context_sizes == [2048]

    @pytest.mark.asyncio
    async def test_local_path_resolved_unchanged(self):
        """测试本地路径不构造hf定位符"""
        lifecycle = self.make_lifecycle(model="/local/model.gguf")

        await lifecycle.initialize()

        self.artifact_resolver.resolve.assert_awaited_once_with("/local/model.gguf", None)

    @pytest.mark.asyncio
    async def test_artifact_failure(self):
        """测试模型文件解析失败"""
        self.artifact_resolver.resolve.side_effect = ArtifactResolutionError("offline")
        lifecycle = self.make_lifecycle()

        with pytest.raises(ArtifactResolutionError):
            await lifecycle.initialize()

        assert lifecycle.status is EngineStatus.UNINITIALIZED
        assert lifecycle.handles is None
        assert self.provider.load_calls == []

    @pytest.mark.asyncio
    async def test_load_failure_then_retry(self):
        """测试加载失败后可以重新初始化"""
        self.provider.load_error = ModelLoadError("unsupported format")
        lifecycle = self.make_lifecycle()

        with pytest.raises(ModelLoadError):
            await lifecycle.initialize()

        assert lifecycle.status is EngineStatus.UNINITIALIZED
        assert lifecycle.handles is None

        self.provider.load_error = None
        await lifecycle.initialize()

        assert lifecycle.status is EngineStatus.READY
        assert len(self.provider.load_calls) == 2

    @pytest.mark.asyncio
    async def test_context_failure_releases_model(self):
        """测试上下文创建失败时释放已加载的模型"""
        self.provider.context_error = ModelLoadError("out of memory")
        lifecycle = self.make_lifecycle()

        with pytest.raises(ModelLoadError, match="out of memory"):
            await lifecycle.initialize()

        assert lifecycle.handles is None
        assert lifecycle.status is EngineStatus.UNINITIALIZED
        assert self.provider.models[0].dispose_count == 1

    @pytest.mark.asyncio
    async def test_dispose_before_initialize(self):
        """测试初始化前释放"""
        lifecycle = self.make_lifecycle()

        await lifecycle.dispose()

        assert lifecycle.status is EngineStatus.DISPOSED
        assert lifecycle.handles is None
        self.memory_manager.force_cleanup.assert_not_called()

    @pytest.mark.asyncio
    async def test_dispose_after_initialize(self):
        """测试初始化后释放"""
        lifecycle = self.make_lifecycle()
        await lifecycle.initialize()

        await lifecycle.dispose()

        assert lifecycle.status is EngineStatus.DISPOSED
        assert lifecycle.handles is None
        assert self.provider.context.dispose_count == 1
        assert self.provider.models[0].dispose_count == 1
        self.memory_manager.force_cleanup.assert_called_once()

    @pytest.mark.asyncio
    async def test_dispose_twice(self):
        """测试重复释放"""
        lifecycle = self.make_lifecycle()
        await lifecycle.initialize()

        await lifecycle.dispose()
        await lifecycle.dispose()

        assert lifecycle.handles is None
        assert self.provider.context.dispose_count == 1
        assert self.provider.models[0].dispose_count == 1

    @pytest.mark.asyncio
    async def test_dispose_releases_context_before_model(self):
        """测试先释放上下文再释放模型"""
        lifecycle = self.make_lifecycle()
        await lifecycle.initialize()
        order = []
        lifecycle.handles.context.dispose = AsyncMock(side_effect=lambda: order.append("context"))
        lifecycle.handles.model.dispose = AsyncMock(side_effect=lambda: order.append("model"))

        await lifecycle.dispose()

        assert order == ["context", "model"]

    @pytest.mark.asyncio
    async def test_initialize_after_dispose(self):
        """测试释放后不能再初始化"""
        lifecycle = self.make_lifecycle()
        await lifecycle.initialize()
        await lifecycle.dispose()

        with pytest.raises(EngineStateError, match="引擎已释放"):
            await lifecycle.initialize()

        assert len(self.provider.load_calls) == 1

    @pytest.mark.asyncio
    async def test_dispose_during_initialize(self):
        """测试初始化过程中被释放"""
        lifecycle = self.make_lifecycle()

        async def resolve_and_dispose(uri, token=None):
            await lifecycle.dispose()
            return "/models/qwen3.gguf"

        self.artifact_resolver.resolve.side_effect = resolve_and_dispose

        with pytest.raises(EngineStateError, match="初始化过程中被释放"):
            await lifecycle.initialize()

        assert lifecycle.status is EngineStatus.DISPOSED
        assert lifecycle.handles is None
        assert self.provider.context.dispose_count == 1
        assert self.provider.models[0].dispose_count == 1

    def test_reset_session_before_initialize(self):
        """测试初始化前清空会话"""
        lifecycle = self.make_lifecycle()
        lifecycle.reset_session()
        assert lifecycle.status is EngineStatus.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_reset_session_keeps_model(self):
        """测试清空会话保留模型"""
        lifecycle = self.make_lifecycle()
        await lifecycle.initialize()
        lifecycle.session.set_chat_history([ChatHistoryItem(type="system", text="Be brief.")])
        handles = lifecycle.handles

        lifecycle.reset_session()

        assert lifecycle.session.get_chat_history() == []
        assert lifecycle.handles is handles
        assert self.provider.context.dispose_count == 0
