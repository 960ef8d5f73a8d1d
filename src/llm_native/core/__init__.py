"""
核心模块

包含数据模型、模型目录、配置管理、参数验证和异常定义。
"""

from .models import (
    ThinkingMode,
    MessageRole,
    FinishReason,
    EngineStatus,
    ModelDescriptor,
    EngineConfig,
    ChatMessage,
    ChatHistoryItem,
    GenerationRequest,
    SamplingParams,
    PromptResponse,
    GenerationResult,
)
from .catalog import (
    MODELS,
    MODEL_ALIASES,
    RECOMMENDED_MODELS,
    lookup_by_id,
    resolve_alias,
    list_model_ids,
    get_recommended_model,
)
from .config import ConfigManager
from .validators import ParameterValidator
from .exceptions import (
    LLMNativeError,
    ConfigurationError,
    ValidationError,
    ArtifactResolutionError,
    ArtifactAuthenticationError,
    ModelNotFoundError,
    ModelLoadError,
    InferenceError,
    EngineStateError,
)

__all__ = [
    # Models
    "ThinkingMode",
    "MessageRole",
    "FinishReason",
    "EngineStatus",
    "ModelDescriptor",
    "EngineConfig",
    "ChatMessage",
    "ChatHistoryItem",
    "GenerationRequest",
    "SamplingParams",
    "PromptResponse",
    "GenerationResult",

    # Catalog
    "MODELS",
    "MODEL_ALIASES",
    "RECOMMENDED_MODELS",
    "lookup_by_id",
    "resolve_alias",
    "list_model_ids",
    "get_recommended_model",

    # Configuration
    "ConfigManager",

    # Validation
    "ParameterValidator",

    # Exceptions
    "LLMNativeError",
    "ConfigurationError",
    "ValidationError",
    "ArtifactResolutionError",
    "ArtifactAuthenticationError",
    "ModelNotFoundError",
    "ModelLoadError",
    "InferenceError",
    "EngineStateError",
]
