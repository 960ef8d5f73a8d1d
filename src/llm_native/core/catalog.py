"""
模型目录

GGUF模型的静态目录、别名表和按用途的推荐表。

所有模型都使用 Q4_K_M 量化（质量/体积的最佳折中）。
"""

from typing import Dict, List, Optional

from .models import ModelDescriptor, ThinkingMode


_EUROPEAN_ASIAN = ("en", "de", "fr", "es", "it", "pt", "nl", "pl", "ru", "ja", "ko", "zh")
_QWEN_LANGUAGES = ("en", "zh", "de", "fr", "es", "pt", "it", "nl", "pl", "ru", "ja", "ko")


def _descriptor(model_id: str, **kwargs) -> ModelDescriptor:
    return ModelDescriptor(id=model_id, quantization="Q4_K_M", **kwargs)


_CATALOG = [
    # Gemma 3n: 边缘设备优化
    _descriptor(
        "gemma-3n-e2b",
        name="Gemma 3n E2B",
        repo="unsloth/gemma-3n-E2B-it-GGUF",
        file="gemma-3n-E2B-it-Q4_K_M.gguf",
        parameters="5B→2B",
        context_length=32768,
        languages=_EUROPEAN_ASIAN,
        description="Ultra-efficient edge model, ~2GB RAM",
        benchmarks={"mmlu": 64, "arena": 1250},
    ),
    _descriptor(
        "gemma-3n-e4b",
        name="Gemma 3n E4B",
        repo="unsloth/gemma-3n-E4B-it-GGUF",
        file="gemma-3n-E4B-it-Q4_K_M.gguf",
        parameters="8B→4B",
        context_length=32768,
        languages=_EUROPEAN_ASIAN,
        description="Best edge model, ~3GB RAM",
        benchmarks={"mmlu": 75, "arena": 1300},
    ),
    # Gemma 3 27B: 内存充足时的最高质量（128K上下文）
    _descriptor(
        "gemma-3-27b",
        name="Gemma 3 27B",
        repo="unsloth/gemma-3-27b-it-GGUF",
        file="gemma-3-27b-it-Q4_K_M.gguf",
        parameters="27B",
        context_length=131072,
        languages=_EUROPEAN_ASIAN,
        description="Maximum quality, 128K context, ~18GB RAM",
        benchmarks={"mmlu": 77, "arena": 1338},
    ),
    # GPT-OSS 20B: MoE，激活参数3.6B
    _descriptor(
        "gpt-oss-20b",
        name="GPT-OSS 20B",
        repo="unsloth/gpt-oss-20b-GGUF",
        file="gpt-oss-20b-Q4_K_M.gguf",
        parameters="21B (3.6B active)",
        context_length=131072,
        languages=("en",),
        description="OpenAI's open model, MoE, ~16GB RAM",
        benchmarks={"mmlu": 82, "arena": 1340},
    ),
    _descriptor(
        "phi-4",
        name="Phi-4 14B",
        repo="bartowski/phi-4-GGUF",
        file="phi-4-Q4_K_M.gguf",
        parameters="14B",
        context_length=16384,
        languages=("en",),
        description="Microsoft's reasoning-focused, excellent for STEM",
        benchmarks={"mmlu": 84, "arena": 1320},
    ),
    # Qwen3: 支持 /no_think 前缀关闭思考
    _descriptor(
        "qwen3-4b",
        name="Qwen3 4B",
        repo="unsloth/Qwen3-4B-GGUF",
        file="Qwen3-4B-Q4_K_M.gguf",
        parameters="4B",
        context_length=32768,
        languages=_QWEN_LANGUAGES,
        description="Thinking mode, 100+ languages, ~3GB RAM",
        thinking_mode=ThinkingMode.SUPPRESS_ON_REQUEST,
        benchmarks={"mmlu": 76, "arena": 1300},
    ),
    _descriptor(
        "qwen3-8b",
        name="Qwen3 8B",
        repo="unsloth/Qwen3-8B-GGUF",
        file="Qwen3-8B-Q4_K_M.gguf",
        parameters="8B",
        context_length=32768,
        languages=_QWEN_LANGUAGES,
        description="Thinking mode, excellent multilingual, ~5GB RAM",
        thinking_mode=ThinkingMode.SUPPRESS_ON_REQUEST,
        benchmarks={"mmlu": 81, "arena": 1350},
    ),
    _descriptor(
        "qwen3-14b",
        name="Qwen3 14B",
        repo="unsloth/Qwen3-14B-GGUF",
        file="Qwen3-14B-Q4_K_M.gguf",
        parameters="14B",
        context_length=32768,
        languages=_QWEN_LANGUAGES,
        description="Thinking mode, top multilingual, ~9GB RAM",
        thinking_mode=ThinkingMode.SUPPRESS_ON_REQUEST,
        benchmarks={"mmlu": 84, "arena": 1380},
    ),
    _descriptor(
        "qwen-2.5-coder-7b",
        name="Qwen 2.5 Coder 7B",
        repo="bartowski/Qwen2.5-Coder-7B-Instruct-GGUF",
        file="Qwen2.5-Coder-7B-Instruct-Q4_K_M.gguf",
        parameters="7B",
        context_length=131072,
        languages=("en",),
        description="Optimized for code generation",
        benchmarks={"mmlu": 66, "arena": 1250},
    ),
    # DeepSeek R1: 总是先输出思维链，需要更多token
    _descriptor(
        "deepseek-r1-7b",
        name="DeepSeek R1 Distill 7B",
        repo="bartowski/DeepSeek-R1-Distill-Qwen-7B-GGUF",
        file="DeepSeek-R1-Distill-Qwen-7B-Q4_K_M.gguf",
        parameters="7B",
        context_length=131072,
        languages=("en", "zh"),
        description="Strong reasoning with chain-of-thought",
        thinking_mode=ThinkingMode.ALWAYS_REASONING,
        benchmarks={"mmlu": 72, "arena": 1300},
    ),
    _descriptor(
        "deepseek-r1-14b",
        name="DeepSeek R1 Distill 14B",
        repo="bartowski/DeepSeek-R1-Distill-Qwen-14B-GGUF",
        file="DeepSeek-R1-Distill-Qwen-14B-Q4_K_M.gguf",
        parameters="14B",
        context_length=131072,
        languages=("en", "zh"),
        description="Best reasoning model, shows thinking",
        thinking_mode=ThinkingMode.ALWAYS_REASONING,
        benchmarks={"mmlu": 79, "arena": 1350},
    ),
]

MODELS: Dict[str, ModelDescriptor] = {model.id: model for model in _CATALOG}

# 别名（小写）到规范模型ID
MODEL_ALIASES: Dict[str, str] = {
    "gemma": "gemma-3n-e4b",
    "gemma-large": "gemma-3-27b",
    "gpt-oss": "gpt-oss-20b",
    "phi": "phi-4",
    "qwen": "qwen3-8b",
    "qwen3": "qwen3-8b",
    "qwen-coder": "qwen-2.5-coder-7b",
    "deepseek": "deepseek-r1-7b",
}

# 按用途的推荐模型
RECOMMENDED_MODELS: Dict[str, str] = {
    "fast": "gemma-3n-e2b",
    "balanced": "gemma-3n-e4b",
    "quality": "gemma-3-27b",
    "edge": "gemma-3n-e2b",
    "multilingual": "qwen3-8b",
    "reasoning": "deepseek-r1-14b",
    "code": "qwen-2.5-coder-7b",
    "long_context": "gemma-3-27b",
}


def lookup_by_id(model_id: str) -> Optional[ModelDescriptor]:
    """按规范ID查找模型，不存在时返回None"""
    return MODELS.get(model_id)


def resolve_alias(alias: str) -> Optional[str]:
    """将别名解析为规范ID，不存在时返回None"""
    return MODEL_ALIASES.get(alias)


def list_model_ids() -> List[str]:
    """返回目录中所有规范模型ID"""
    return list(MODELS.keys())


def get_recommended_model(use_case: str) -> Optional[ModelDescriptor]:
    """
    获取某个用途的推荐模型

    Args:
        use_case: 用途名称，例如 "fast"、"code"

    Returns:
        Optional[ModelDescriptor]: 推荐模型，用途未知时返回None
    """
    model_id = RECOMMENDED_MODELS.get(use_case)
    return lookup_by_id(model_id) if model_id else None
