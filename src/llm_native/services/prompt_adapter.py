"""
提示词适配

按模型家族的思考模式调整提示词和默认token预算。无副作用，每次请求重新计算。
"""

from ..core.models import DEFAULT_MAX_TOKENS, REASONING_MAX_TOKENS, ThinkingMode


# Qwen3 识别的关闭思考指令
NO_THINK_DIRECTIVE = "/no_think "


class PromptAdapter:
    """提示词适配器"""

    def prepare_prompt(self, prompt: str, thinking_mode: ThinkingMode, enable_thinking: bool) -> str:
        """
        调整提示词

        Args:
            prompt: 原始提示词
            thinking_mode: 模型家族的思考模式
            enable_thinking: 是否启用思考

        Returns:
            str: 实际下发的提示词
        """
        if thinking_mode is ThinkingMode.SUPPRESS_ON_REQUEST and not enable_thinking:
            return NO_THINK_DIRECTIVE + prompt
        return prompt

    def default_max_tokens(self, thinking_mode: ThinkingMode) -> int:
        """
        默认token预算

        总是思考的模型需要双倍预算，否则思维链可能耗尽全部token，可见回复为空。
        """
        if thinking_mode is ThinkingMode.ALWAYS_REASONING:
            return REASONING_MAX_TOKENS
        return DEFAULT_MAX_TOKENS
