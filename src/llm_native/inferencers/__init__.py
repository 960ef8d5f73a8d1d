"""
推理后端模块

包含推理后端接口、llama.cpp实现和对话会话。
"""

from .base import BaseInferenceProvider, BaseLoadedModel, BaseInferenceContext
from .llama_cpp_provider import LlamaCppProvider, LlamaCppModel, LlamaCppContext, acquire_provider
from .session import ChatSession

__all__ = [
    'BaseInferenceProvider',
    'BaseLoadedModel',
    'BaseInferenceContext',
    'LlamaCppProvider',
    'LlamaCppModel',
    'LlamaCppContext',
    'acquire_provider',
    'ChatSession',
]
