"""
错误处理服务

对引擎异常分类、生成用户友好的提示并记录日志。只负责报告，异常仍由调用方重新抛出。
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from enum import Enum

from ..core.exceptions import (
    ArtifactAuthenticationError,
    ArtifactResolutionError,
    ConfigurationError,
    EngineStateError,
    InferenceError,
    ModelLoadError,
    ModelNotFoundError,
    ValidationError,
)


class ErrorSeverity(Enum):
    """错误严重程度"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """错误类别"""
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    ARTIFACT = "artifact"
    AUTHENTICATION = "authentication"
    MODEL_LOADING = "model_loading"
    INFERENCE = "inference"
    LIFECYCLE = "lifecycle"
    SYSTEM = "system"


class ErrorInfo:
    """错误信息封装"""

    def __init__(
        self,
        error: Exception,
        category: ErrorCategory,
        severity: ErrorSeverity,
        user_message: str,
        suggestions: List[str],
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = True
    ):
        self.error = error
        self.category = category
        self.severity = severity
        self.user_message = user_message
        self.technical_details = str(error)
        self.suggestions = suggestions
        self.context = context or {}
        self.recoverable = recoverable
        self.timestamp = datetime.now()
        self.error_id = f"{category.value}_{int(self.timestamp.timestamp())}"


# (异常类型, 类别, 严重程度, 用户提示, 建议, 是否可恢复)，子类必须排在父类之前
_ERROR_PROFILES: List[Tuple[type, ErrorCategory, ErrorSeverity, str, List[str], bool]] = [
    (
        ConfigurationError, ErrorCategory.CONFIGURATION, ErrorSeverity.MEDIUM,
        "引擎配置无效",
        ["检查 model 参数是否为非空字符串", "gpu_layers 使用 -1（全部）或非负整数", "检查配置文件格式"],
        False,
    ),
    (
        ValidationError, ErrorCategory.VALIDATION, ErrorSeverity.LOW,
        "参数验证失败",
        ["检查采样参数的范围", "chat() 的最后一条消息必须来自用户"],
        False,
    ),
    (
        ArtifactAuthenticationError, ErrorCategory.AUTHENTICATION, ErrorSeverity.HIGH,
        "模型仓库需要授权访问",
        ["设置 HF_TOKEN 环境变量或传入 hugging_face_token", "在HuggingFace上接受模型的使用协议"],
        True,
    ),
    (
        ModelNotFoundError, ErrorCategory.ARTIFACT, ErrorSeverity.MEDIUM,
        "找不到指定的模型文件",
        ["检查模型ID或别名是否拼写正确", "确认仓库和文件名仍然存在"],
        False,
    ),
    (
        ArtifactResolutionError, ErrorCategory.ARTIFACT, ErrorSeverity.HIGH,
        "获取模型文件失败",
        ["检查网络连接", "稍后重新调用 initialize()"],
        True,
    ),
    (
        ModelLoadError, ErrorCategory.MODEL_LOADING, ErrorSeverity.HIGH,
        "模型加载失败",
        ["确认模型文件是完整的GGUF文件", "减少 gpu_layers 或 context_size 以降低内存占用", "确认已安装 llama-cpp-python"],
        False,
    ),
    (
        InferenceError, ErrorCategory.INFERENCE, ErrorSeverity.HIGH,
        "模型推理失败",
        ["检查提示词长度是否超过上下文长度", "尝试调整 max_tokens 等参数"],
        True,
    ),
    (
        EngineStateError, ErrorCategory.LIFECYCLE, ErrorSeverity.MEDIUM,
        "引擎状态不允许该操作",
        ["引擎释放后请创建新的实例"],
        False,
    ),
]


class ErrorHandler:
    """错误处理器"""

    def __init__(self, log_file: Optional[str] = None):
        """
        初始化错误处理器

        Args:
            log_file: 错误日志文件路径，None时只写入标准日志
        """
        self.log_file = log_file
        self.logger = logging.getLogger('llm_native.error_handler')

        if log_file:
            self._attach_file_handler(log_file)

    def _attach_file_handler(self, log_file: str) -> None:
        """添加文件日志处理器"""
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # 同一个logger只保留一个文件处理器
        for handler in list(self.logger.handlers):
            if isinstance(handler, logging.FileHandler):
                self.logger.removeHandler(handler)
                handler.close()

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        self.logger.setLevel(logging.DEBUG)
        self.logger.addHandler(file_handler)

    def classify(self, error: Exception, context: Optional[Dict[str, Any]] = None) -> ErrorInfo:
        """把异常转换为错误信息"""
        for error_type, category, severity, message, suggestions, recoverable in _ERROR_PROFILES:
            if isinstance(error, error_type):
                model = (context or {}).get('model')
                user_message = f"{message}: {model}" if model else message
                return ErrorInfo(error, category, severity, user_message, list(suggestions), context, recoverable)

        return ErrorInfo(
            error,
            ErrorCategory.SYSTEM,
            ErrorSeverity.MEDIUM,
            "发生未知错误",
            ["查看详细错误信息进行诊断"],
            context,
        )

    def handle_error(self, error: Exception, context: Optional[Dict[str, Any]] = None) -> ErrorInfo:
        """
        处理错误：分类并记录日志

        Args:
            error: 异常对象
            context: 错误上下文信息

        Returns:
            ErrorInfo: 错误信息对象
        """
        error_info = self.classify(error, context)
        self._log_error(error_info)
        return error_info

    def _log_error(self, error_info: ErrorInfo) -> None:
        """记录错误到日志"""
        # context 中不能序列化的对象转换为字符串
        safe_context = {}
        for key, value in error_info.context.items():
            try:
                json.dumps(value)
                safe_context[key] = value
            except (TypeError, ValueError):
                safe_context[key] = str(value)

        log_data = {
            'error_id': error_info.error_id,
            'category': error_info.category.value,
            'severity': error_info.severity.value,
            'user_message': error_info.user_message,
            'technical_details': error_info.technical_details,
            'context': safe_context,
            'recoverable': error_info.recoverable,
        }
        message = json.dumps(log_data, ensure_ascii=False)

        # 根据严重程度选择日志级别
        if error_info.severity == ErrorSeverity.CRITICAL:
            self.logger.critical(message)
        elif error_info.severity == ErrorSeverity.HIGH:
            self.logger.error(message)
        elif error_info.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(message)
        else:
            self.logger.info(message)

# 全局错误处理器实例
_global_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """获取全局错误处理器实例"""
    global _global_error_handler
    if _global_error_handler is None:
        _global_error_handler = ErrorHandler()
    return _global_error_handler


def handle_error(error: Exception, context: Optional[Dict[str, Any]] = None) -> ErrorInfo:
    """处理错误的便捷函数"""
    return get_error_handler().handle_error(error, context)


def setup_error_handling(log_file: Optional[str] = None) -> ErrorHandler:
    """
    设置全局错误处理

    Args:
        log_file: 错误日志文件路径
    """
    global _global_error_handler
    _global_error_handler = ErrorHandler(log_file)
    return _global_error_handler
