"""
自定义异常定义

定义引擎生命周期、模型解析和生成过程中使用的异常类。
"""


class LLMNativeError(Exception):
    """基础异常类"""
    pass


class ConfigurationError(LLMNativeError):
    """配置错误（构造时同步抛出）"""
    pass


class ValidationError(LLMNativeError):
    """参数验证或调用前置条件错误"""
    pass


class ArtifactResolutionError(LLMNativeError):
    """模型文件解析/下载错误"""
    pass


class ArtifactAuthenticationError(ArtifactResolutionError):
    """访问受限模型仓库时认证失败"""
    pass


class ModelNotFoundError(ArtifactResolutionError):
    """模型仓库或模型文件不存在"""
    pass


class ModelLoadError(LLMNativeError):
    """模型加载或上下文创建错误"""
    pass


class InferenceError(LLMNativeError):
    """推理过程错误"""
    pass


class EngineStateError(LLMNativeError):
    """引擎状态错误（例如释放后继续使用）"""
    pass
