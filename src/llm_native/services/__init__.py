"""
服务模块

包含模型解析、模型文件获取、提示词适配、引擎生命周期、生成编排、错误处理和内存管理服务。
"""

from .model_resolver import ModelResolver, HF_URI_SCHEME
from .prompt_adapter import PromptAdapter, NO_THINK_DIRECTIVE
from .artifact_resolver import ArtifactResolver, parse_hf_uri, is_hf_uri
from .engine_lifecycle import EngineLifecycle, EngineHandles
from .llm_engine import LLMEngine
from .error_handler import ErrorHandler, handle_error, get_error_handler, setup_error_handling
from .memory_manager import MemoryManager

__all__ = [
    'ModelResolver',
    'HF_URI_SCHEME',
    'PromptAdapter',
    'NO_THINK_DIRECTIVE',
    'ArtifactResolver',
    'parse_hf_uri',
    'is_hf_uri',
    'EngineLifecycle',
    'EngineHandles',
    'LLMEngine',
    'ErrorHandler',
    'handle_error',
    'get_error_handler',
    'setup_error_handling',
    'MemoryManager',
]
