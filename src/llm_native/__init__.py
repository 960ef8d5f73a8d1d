"""
llm_native

基于llama.cpp的本地LLM推理封装：模型目录、按需加载、单轮/流式生成和多轮对话。
"""

from .core import (
    ChatMessage,
    EngineConfig,
    FinishReason,
    GenerationRequest,
    GenerationResult,
    MessageRole,
    ModelDescriptor,
    ThinkingMode,
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
from .services import LLMEngine

__version__ = "0.1.0"

__all__ = [
    "LLMEngine",
    "ChatMessage",
    "EngineConfig",
    "FinishReason",
    "GenerationRequest",
    "GenerationResult",
    "MessageRole",
    "ModelDescriptor",
    "ThinkingMode",
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
