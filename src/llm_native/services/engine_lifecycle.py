"""
引擎生命周期控制器

持有推理后端、模型、上下文和会话句柄，负责幂等初始化和资源释放。
四个句柄作为一个整体在初始化成功时建立，在释放时一起清除。
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .artifact_resolver import ArtifactResolver
from .error_handler import handle_error
from .memory_manager import MemoryManager
from .model_resolver import ModelResolver
from ..core.exceptions import EngineStateError
from ..core.models import EngineConfig, EngineStatus
from ..inferencers.base import BaseInferenceContext, BaseInferenceProvider, BaseLoadedModel
from ..inferencers.llama_cpp_provider import acquire_provider
from ..inferencers.session import ChatSession


logger = logging.getLogger(__name__)

ProviderFactory = Callable[[], Awaitable[BaseInferenceProvider]]


@dataclass(frozen=True)
class EngineHandles:
    """就绪状态下的全部句柄"""
    provider: BaseInferenceProvider
    model: BaseLoadedModel
    context: BaseInferenceContext
    session: ChatSession


class EngineLifecycle:
    """
    引擎生命周期控制器

    状态: UNINITIALIZED → INITIALIZING → READY，任意状态 → DISPOSED。
    DISPOSED 是终态，之后的 initialize() 会抛出 EngineStateError。
    初始化失败会释放已获取的句柄并回到 UNINITIALIZED，可以再次调用 initialize()。
    """

    def __init__(
        self,
        config: EngineConfig,
        resolver: Optional[ModelResolver] = None,
        provider_factory: Optional[ProviderFactory] = None,
        artifact_resolver: Optional[ArtifactResolver] = None,
        memory_manager: Optional[MemoryManager] = None,
    ):
        """
        初始化生命周期控制器

        Args:
            config: 引擎配置
            resolver: 模型解析器
            provider_factory: 获取推理后端的协程函数，默认使用llama.cpp
            artifact_resolver: 模型文件解析器
            memory_manager: 内存管理器
        """
        self.config = config
        self.resolver = resolver or ModelResolver()
        self.provider_factory = provider_factory or acquire_provider
        self.artifact_resolver = artifact_resolver or ArtifactResolver()
        self.memory_manager = memory_manager or MemoryManager()

        # 模型在构造时解析一次，之后不可更改
        self.model_id = self.resolver.resolve(config.model)
        self.model_path: Optional[str] = None

        self._status = EngineStatus.UNINITIALIZED
        self._handles: Optional[EngineHandles] = None
        self._init_lock = asyncio.Lock()

    @property
    def status(self) -> EngineStatus:
        return self._status

    @property
    def is_ready(self) -> bool:
        return self._status is EngineStatus.READY

    @property
    def handles(self) -> Optional[EngineHandles]:
        return self._handles

    @property
    def session(self) -> ChatSession:
        """当前会话，未就绪时抛出 EngineStateError"""
        if self._handles is None:
            raise EngineStateError(f"引擎未就绪（当前状态: {self._status.value}）")
        return self._handles.session

    async def initialize(self) -> None:
        """
        初始化引擎并加载模型，已就绪时直接返回

        Raises:
            EngineStateError: 引擎已释放
            ArtifactResolutionError: 模型文件解析或下载失败
            ModelLoadError: 模型加载或上下文创建失败
        """
        if self._status is EngineStatus.READY:
            return
        self._check_not_disposed()

        async with self._init_lock:
            # 等待锁期间可能已被其他调用初始化或释放
            if self._status is EngineStatus.READY:
                return
            self._check_not_disposed()

            self._status = EngineStatus.INITIALIZING
            try:
                handles = await self._acquire_handles()
            except Exception as e:
                if self._status is EngineStatus.INITIALIZING:
                    self._status = EngineStatus.UNINITIALIZED
                handle_error(e, {'model': self.model_id, 'operation': 'initialize'})
                raise

            if self._status is EngineStatus.DISPOSED:
                # 初始化过程中被释放
                await self._release(handles)
                raise EngineStateError("引擎在初始化过程中被释放")

            self._handles = handles
            self._status = EngineStatus.READY
            self._log_ready(handles)

    def _log_ready(self, handles: EngineHandles) -> None:
        logger.info(
            f"模型加载完成: {self.model_id}, 上下文长度 {handles.context.context_size}"
        )
        logger.debug(f"模型信息: {handles.model.get_model_info()}")

        usage = self.memory_manager.get_memory_usage()
        logger.info(
            f"进程内存: {usage['rss'] / (1024 * 1024):.0f}MB, "
            f"可用内存: {usage['available'] / (1024 * 1024):.0f}MB"
        )

    async def ensure_initialized(self) -> None:
        """未就绪时初始化，幂等"""
        if not self.is_ready:
            await self.initialize()

    async def _acquire_handles(self) -> EngineHandles:
        provider = await self.provider_factory()

        model_uri = self.resolver.get_artifact_uri(self.model_id)
        logger.info(f"解析模型: {model_uri}")
        model_path = await self.artifact_resolver.resolve(model_uri, self.config.hf_token)
        self.model_path = model_path

        self.memory_manager.warn_if_insufficient(model_path)
        logger.info(f"从 {model_path} 加载模型")
        model = await provider.load_model(model_path, self.config.gpu_layers)

        try:
            context = await model.create_context(self.config.context_size)
        except Exception:
            await self._dispose_quietly(model.dispose, "模型")
            raise

        try:
            session = ChatSession(context)
        except Exception:
            await self._dispose_quietly(context.dispose, "推理上下文")
            await self._dispose_quietly(model.dispose, "模型")
            raise

        return EngineHandles(provider=provider, model=model, context=context, session=session)

    async def _dispose_quietly(self, dispose: Callable[[], Awaitable[None]], name: str) -> None:
        # 只用于初始化失败后的回滚，原始异常会继续抛出
        try:
            await dispose()
        except Exception as e:
            logger.warning(f"回滚时释放{name}失败: {e}")

    async def _release(self, handles: EngineHandles) -> None:
        # 上下文依赖模型，先释放上下文
        try:
            await handles.context.dispose()
        finally:
            await handles.model.dispose()

    def _check_not_disposed(self) -> None:
        if self._status is EngineStatus.DISPOSED:
            raise EngineStateError("引擎已释放，请创建新的实例")

    def reset_session(self) -> None:
        """清空会话历史，未初始化时不做任何事"""
        if self._handles is not None:
            self._handles.session.set_chat_history([])
            logger.debug("会话历史已清空")

    async def dispose(self) -> None:
        """释放全部资源，可重复调用，未初始化时也可以调用"""
        handles, self._handles = self._handles, None
        self._status = EngineStatus.DISPOSED

        if handles is None:
            return

        try:
            await self._release(handles)
        finally:
            self.memory_manager.force_cleanup()
            logger.info(f"引擎已释放: {self.model_id}")
