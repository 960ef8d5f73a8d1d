"""
本地LLM引擎

对外的入口类：解析模型、按需初始化，并提供单轮生成、流式生成和多轮对话。
同一实例上的请求需要由调用方串行化，会话历史没有内部互斥保护。
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .artifact_resolver import ArtifactResolver
from .engine_lifecycle import EngineLifecycle, ProviderFactory
from .error_handler import handle_error
from .memory_manager import MemoryManager
from .model_resolver import ModelResolver
from .prompt_adapter import PromptAdapter
from ..core.config import ConfigManager
from ..core.exceptions import ValidationError
from ..core.models import (
    DEFAULT_REPEAT_PENALTY,
    DEFAULT_TEMPERATURE,
    DEFAULT_TOP_K,
    DEFAULT_TOP_P,
    ChatHistoryItem,
    ChatMessage,
    EngineConfig,
    EngineStatus,
    GenerationRequest,
    GenerationResult,
    MessageRole,
    ModelDescriptor,
    SamplingParams,
)
from ..core.validators import ParameterValidator


logger = logging.getLogger(__name__)

# 对话消息角色到会话历史条目类型
HISTORY_TYPES: Dict[MessageRole, str] = {
    MessageRole.SYSTEM: "system",
    MessageRole.USER: "user",
    MessageRole.ASSISTANT: "model",
}

MessageLike = Union[ChatMessage, Dict[str, Any]]


class ChunkCounter:
    """流式片段计数器，先调用用户回调再计数"""

    def __init__(self, on_token: Optional[Callable[[str], None]] = None):
        self.on_token = on_token
        self.count = 0

    def __call__(self, chunk: str) -> None:
        if self.on_token is not None:
            self.on_token(chunk)
        self.count += 1


class LLMEngine:
    """
    本地LLM引擎

    用法::

        async with LLMEngine("qwen3") as engine:
            result = await engine.generate("你好")
            print(result.text)

    模型在第一次生成时自动加载，也可以提前调用 initialize()。
    在同一实例上混用带 system_prompt 的 generate() 和 chat() 时，
    两者都会改写同一份会话历史，交错调用后的历史顺序没有定义。
    """

    def __init__(
        self,
        model: str,
        *,
        gpu_layers: Optional[int] = None,
        context_size: Optional[int] = None,
        hugging_face_token: Optional[str] = None,
        enable_thinking: Optional[bool] = None,
        config_manager: Optional[ConfigManager] = None,
        provider_factory: Optional[ProviderFactory] = None,
        artifact_resolver: Optional[ArtifactResolver] = None,
        memory_manager: Optional[MemoryManager] = None,
    ):
        """
        创建引擎，不加载模型

        Args:
            model: 模型ID、别名、GGUF文件路径或完整URI
            gpu_layers: 卸载到GPU的层数，-1 表示全部
            context_size: 上下文长度覆盖值
            hugging_face_token: HuggingFace访问令牌，未设置时依次读取配置文件和环境变量
            enable_thinking: 是否允许模型输出思考过程
            config_manager: 配置管理器
            provider_factory: 获取推理后端的协程函数
            artifact_resolver: 模型文件解析器
            memory_manager: 内存管理器

        Raises:
            ConfigurationError: 配置无效
        """
        config_manager = config_manager or ConfigManager()
        self._config = config_manager.build_engine_config(
            model,
            gpu_layers=gpu_layers,
            context_size=context_size,
            hf_token=hugging_face_token,
            enable_thinking=enable_thinking,
        )

        self.resolver = ModelResolver()
        self.prompt_adapter = PromptAdapter()
        self.validator = ParameterValidator()
        self.lifecycle = EngineLifecycle(
            self._config,
            resolver=self.resolver,
            provider_factory=provider_factory,
            artifact_resolver=artifact_resolver,
            memory_manager=memory_manager,
        )
        logger.debug(f"创建引擎: {model} -> {self.model_id}")

    @property
    def model_id(self) -> str:
        """规范模型ID"""
        return self.lifecycle.model_id

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def status(self) -> EngineStatus:
        return self.lifecycle.status

    async def __aenter__(self) -> "LLMEngine":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.dispose()

    async def initialize(self) -> None:
        """加载模型，已加载时直接返回"""
        await self.lifecycle.initialize()

    async def dispose(self) -> None:
        """释放模型和上下文，可重复调用"""
        await self.lifecycle.dispose()

    def reset_session(self) -> None:
        """清空对话历史，保留已加载的模型"""
        self.lifecycle.reset_session()

    def get_model_info(self) -> ModelDescriptor:
        """获取模型信息，不需要初始化"""
        return self.resolver.describe(self.model_id)

    def is_available(self) -> bool:
        # 平台能力要到加载模型时才能确定
        return True

    async def generate(self, request: Union[GenerationRequest, str]) -> GenerationResult:
        """
        生成回复

        Args:
            request: 生成请求，或直接传入提示词

        Returns:
            GenerationResult: 生成结果

        Raises:
            ValidationError: 采样参数无效
            InferenceError: 推理失败
        """
        return await self._generate(self._as_request(request))

    async def generate_streaming(
        self,
        request: Union[GenerationRequest, str],
        on_token: Callable[[str], None],
        stop_event: Optional[threading.Event] = None,
    ) -> GenerationResult:
        """
        流式生成回复

        on_token 在事件循环线程上按生成顺序同步调用，调用在本方法返回前全部完成。

        Args:
            request: 生成请求，或直接传入提示词
            on_token: 每个文本片段的回调
            stop_event: 置位后在当前片段之后停止生成

        Returns:
            GenerationResult: 生成结果
        """
        return await self._generate(self._as_request(request), on_token, stop_event)

    async def chat(
        self,
        messages: Sequence[MessageLike],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
        top_k: Optional[int] = None,
        repeat_penalty: Optional[float] = None,
        stop: Optional[List[str]] = None,
    ) -> GenerationResult:
        """
        多轮对话

        除最后一条外的消息作为会话历史，最后一条作为本轮提示词。
        只有一条消息时不改写会话历史。

        Args:
            messages: ChatMessage 或 {"role": ..., "content": ...} 字典列表，最后一条必须来自用户
            其余参数同 GenerationRequest

        Returns:
            GenerationResult: 生成结果

        Raises:
            ValidationError: 消息列表为空、角色无效或最后一条消息不是用户消息
        """
        chat_messages = [self._as_message(m) for m in messages]
        if not chat_messages:
            raise ValidationError("消息列表不能为空")
        if chat_messages[-1].role is not MessageRole.USER:
            raise ValidationError(
                f"最后一条消息必须来自用户 (role=user)，得到 role={chat_messages[-1].role.value}"
            )

        request = GenerationRequest(
            prompt=chat_messages[-1].content,
            max_tokens=max_tokens,
            temperature=temperature,
            top_p=top_p,
            top_k=top_k,
            repeat_penalty=repeat_penalty,
            stop=stop,
        )
        # 先验证参数，避免无效请求触发模型加载
        self._build_sampling(request)

        history = [
            ChatHistoryItem(type=HISTORY_TYPES[m.role], text=m.content)
            for m in chat_messages[:-1]
        ]
        if history:
            await self.lifecycle.ensure_initialized()
            self.lifecycle.session.set_chat_history(history)

        return await self.generate(request)

    def _as_request(self, request: Union[GenerationRequest, str]) -> GenerationRequest:
        if isinstance(request, str):
            return GenerationRequest(prompt=request)
        if not isinstance(request, GenerationRequest):
            raise ValidationError(f"不支持的请求类型: {type(request).__name__}")
        return request

    def _as_message(self, message: MessageLike) -> ChatMessage:
        if isinstance(message, ChatMessage):
            # 角色可能以字符串传入
            try:
                return ChatMessage(role=MessageRole(message.role), content=message.content)
            except ValueError as e:
                raise ValidationError(f"无效的消息角色: {message.role}") from e
        if isinstance(message, dict):
            try:
                return ChatMessage(role=MessageRole(message["role"]), content=message["content"])
            except (KeyError, ValueError) as e:
                raise ValidationError(f"无效的对话消息: {message}") from e
        raise ValidationError(f"不支持的消息类型: {type(message).__name__}")

    def _build_sampling(self, request: GenerationRequest) -> SamplingParams:
        """合并请求参数和默认值并验证"""
        thinking_mode = self.resolver.get_thinking_mode(self.model_id)

        def pick(value, default):
            return default if value is None else value

        sampling = SamplingParams(
            max_tokens=pick(request.max_tokens, self.prompt_adapter.default_max_tokens(thinking_mode)),
            temperature=pick(request.temperature, DEFAULT_TEMPERATURE),
            top_p=pick(request.top_p, DEFAULT_TOP_P),
            top_k=pick(request.top_k, DEFAULT_TOP_K),
            repeat_penalty=pick(request.repeat_penalty, DEFAULT_REPEAT_PENALTY),
            stop=tuple(request.stop or ()),
        )

        is_valid, errors = self.validator.validate_sampling(sampling)
        if not is_valid:
            raise ValidationError(f"生成参数无效: {'; '.join(errors)}")
        return sampling

    async def _generate(
        self,
        request: GenerationRequest,
        on_token: Optional[Callable[[str], None]] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> GenerationResult:
        sampling = self._build_sampling(request)

        await self.lifecycle.ensure_initialized()
        session = self.lifecycle.session

        thinking_mode = self.resolver.get_thinking_mode(self.model_id)
        prompt = self.prompt_adapter.prepare_prompt(
            request.prompt, thinking_mode, self._config.enable_thinking
        )

        if request.system_prompt:
            session.set_chat_history([ChatHistoryItem(type="system", text=request.system_prompt)])

        counter = ChunkCounter(on_token)

        logger.debug(
            f"生成请求: model={self.model_id}, max_tokens={sampling.max_tokens}, "
            f"temperature={sampling.temperature}, top_p={sampling.top_p}, top_k={sampling.top_k}"
        )

        start_time = time.time()
        try:
            response = await session.prompt(prompt, sampling, counter, stop_event)
        except Exception as e:
            handle_error(e, {'model': self.model_id, 'operation': 'generate'})
            raise
        duration = time.time() - start_time
        token_count = counter.count

        tokens_per_second = token_count / duration if duration > 0 else 0.0
        logger.info(
            f"生成完成: {token_count} tokens, {duration:.2f}s, {tokens_per_second:.1f} tokens/s"
        )

        return GenerationResult(
            text=response.text,
            token_count=token_count,
            prompt_token_count=response.prompt_token_count,
            duration_seconds=duration,
            tokens_per_second=tokens_per_second,
            finish_reason=response.finish_reason,
            model=self.model_id,
        )
