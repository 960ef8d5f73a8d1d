"""
参数验证器

实现引擎配置和生成采样参数的验证规则。
"""

from typing import Any, Dict, List, Optional, Tuple

from .models import EngineConfig, SamplingParams


class ParameterValidator:
    """参数验证器"""

    # 参数范围定义，None 表示不设上/下限
    PARAMETER_RANGES = {
        # 采样参数
        "temperature": (0.0, 2.0),
        "top_p": (0.0, 1.0),
        "top_k": (0, None),
        "repeat_penalty": (0.0, 2.0),
        "max_tokens": (1, None),

        # 引擎参数
        "gpu_layers": (-1, None),
        "context_size": (1, None),
    }

    PARAMETER_TYPES = {
        "model": str,
        "temperature": float,
        "top_p": float,
        "top_k": int,
        "repeat_penalty": float,
        "max_tokens": int,
        "gpu_layers": int,
        "context_size": int,
        "enable_thinking": bool,
        "hf_token": str,
    }

    # 允许为None的参数
    OPTIONAL_PARAMETERS = {"context_size", "hf_token"}

    def validate_parameter(self, param_name: str, value: Any) -> Tuple[bool, Optional[str]]:
        """
        验证单个参数

        Args:
            param_name: 参数名称
            value: 参数值

        Returns:
            (is_valid, error_message)
        """
        if value is None and param_name in self.OPTIONAL_PARAMETERS:
            return True, None

        # 类型验证
        if not self._validate_type(param_name, value):
            expected_type = self.PARAMETER_TYPES[param_name].__name__
            return False, f"参数 '{param_name}' 类型错误，期望 {expected_type}，得到 {type(value).__name__}"

        # 范围验证
        if not self._validate_range(param_name, value):
            return False, f"参数 '{param_name}' 超出有效范围 {self._get_range_info(param_name)}，得到 {value}"

        # 特殊值验证
        special_error = self._validate_special_values(param_name, value)
        if special_error:
            return False, special_error

        return True, None

    def validate_engine_config(self, config: EngineConfig) -> Tuple[bool, List[str]]:
        """
        验证引擎配置

        Args:
            config: 引擎配置

        Returns:
            (is_valid, error_messages)
        """
        values = {
            "model": config.model,
            "gpu_layers": config.gpu_layers,
            "context_size": config.context_size,
            "hf_token": config.hf_token,
            "enable_thinking": config.enable_thinking,
        }
        return self._collect_errors(values)

    def validate_sampling(self, params: SamplingParams) -> Tuple[bool, List[str]]:
        """
        验证合并后的采样参数

        Args:
            params: 采样参数

        Returns:
            (is_valid, error_messages)
        """
        values = {
            "max_tokens": params.max_tokens,
            "temperature": params.temperature,
            "top_p": params.top_p,
            "top_k": params.top_k,
            "repeat_penalty": params.repeat_penalty,
        }
        is_valid, errors = self._collect_errors(values)

        if not all(isinstance(s, str) for s in params.stop):
            errors.append("参数 'stop' 必须是字符串列表")
            is_valid = False

        return is_valid, errors

    def _collect_errors(self, values: Dict[str, Any]) -> Tuple[bool, List[str]]:
        errors = []
        for param_name, value in values.items():
            is_valid, error_msg = self.validate_parameter(param_name, value)
            if not is_valid:
                errors.append(error_msg)
        return len(errors) == 0, errors

    def _validate_type(self, param_name: str, value: Any) -> bool:
        """验证参数类型"""
        expected_type = self.PARAMETER_TYPES.get(param_name)
        if expected_type is None:
            return True  # 未知参数跳过类型检查

        # bool 是 int 的子类，需要单独排除
        if expected_type == bool:
            return isinstance(value, bool)
        elif expected_type == int:
            return isinstance(value, int) and not isinstance(value, bool)
        elif expected_type == float:
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        return isinstance(value, expected_type)

    def _validate_range(self, param_name: str, value: Any) -> bool:
        """验证参数范围"""
        if param_name not in self.PARAMETER_RANGES:
            return True

        min_val, max_val = self.PARAMETER_RANGES[param_name]
        if min_val is not None and value < min_val:
            return False
        if max_val is not None and value > max_val:
            return False
        return True

    def _validate_special_values(self, param_name: str, value: Any) -> Optional[str]:
        """验证特殊值"""
        if param_name == "model" and not value.strip():
            return "参数 'model' 不能为空"
        if param_name == "repeat_penalty" and value <= 0:
            return "参数 'repeat_penalty' 必须大于0"
        return None

    def _get_range_info(self, param_name: str) -> str:
        """获取参数范围信息"""
        min_val, max_val = self.PARAMETER_RANGES[param_name]
        lower = "-∞" if min_val is None else str(min_val)
        upper = "+∞" if max_val is None else str(max_val)
        return f"[{lower}, {upper}]"
