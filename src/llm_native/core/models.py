"""
数据模型定义

定义模型目录、引擎配置、对话消息和生成请求/结果的核心数据结构。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


# GPU层数哨兵值：-1 表示全部层卸载到GPU，0 表示仅CPU
ALL_GPU_LAYERS = -1

# 生成参数默认值
DEFAULT_MAX_TOKENS = 256
REASONING_MAX_TOKENS = 512
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_P = 0.9
DEFAULT_TOP_K = 40
DEFAULT_REPEAT_PENALTY = 1.1

# 目录外模型的保守默认值
CUSTOM_MODEL_REPO = "custom"
FALLBACK_CONTEXT_LENGTH = 4096
FALLBACK_LANGUAGES = ("en",)


class ThinkingMode(Enum):
    """模型家族的思考模式标记"""
    NONE = "none"
    SUPPRESS_ON_REQUEST = "suppress_on_request"  # Qwen3: 可用 /no_think 关闭
    ALWAYS_REASONING = "always_reasoning"  # DeepSeek R1: 总是先思考


class MessageRole(Enum):
    """对话消息角色"""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class FinishReason(Enum):
    """生成结束原因"""
    STOP = "stop"
    LENGTH = "length"
    ERROR = "error"


class EngineStatus(Enum):
    """引擎生命周期状态"""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    DISPOSED = "disposed"


@dataclass(frozen=True)
class ModelDescriptor:
    """模型目录条目（不可变）"""
    id: str
    name: str
    repo: str
    file: str
    parameters: str
    quantization: str
    context_length: int
    languages: Tuple[str, ...]
    description: str
    thinking_mode: ThinkingMode = ThinkingMode.NONE
    requires_auth: bool = False
    benchmarks: Dict[str, float] = field(default_factory=dict, hash=False, compare=False)


@dataclass(frozen=True)
class EngineConfig:
    """引擎配置，构造后只读"""
    model: str
    gpu_layers: int = ALL_GPU_LAYERS
    context_size: Optional[int] = None
    hf_token: Optional[str] = field(default=None, repr=False)
    enable_thinking: bool = False


@dataclass(frozen=True)
class ChatMessage:
    """对话消息"""
    role: MessageRole
    content: str


@dataclass(frozen=True)
class ChatHistoryItem:
    """会话历史条目，type 为 system / user / model"""
    type: str
    text: str


@dataclass
class GenerationRequest:
    """生成请求，未设置的采样参数使用默认值"""
    prompt: str
    system_prompt: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    repeat_penalty: Optional[float] = None
    stop: Optional[List[str]] = None


@dataclass(frozen=True)
class SamplingParams:
    """合并默认值后实际下发给推理后端的采样参数"""
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    top_p: float = DEFAULT_TOP_P
    top_k: int = DEFAULT_TOP_K
    repeat_penalty: float = DEFAULT_REPEAT_PENALTY
    stop: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PromptResponse:
    """会话单轮生成的原始结果"""
    text: str
    finish_reason: FinishReason
    prompt_token_count: int = 0


@dataclass
class GenerationResult:
    """生成结果数据类"""
    text: str
    token_count: int
    prompt_token_count: int
    duration_seconds: float
    tokens_per_second: float
    finish_reason: FinishReason
    model: str
