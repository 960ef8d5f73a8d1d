"""
对话会话

绑定到一个推理上下文的有状态会话，维护对话历史并执行单轮生成。
"""

import asyncio
import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional

from .base import BaseInferenceContext
from ..core.exceptions import InferenceError, ValidationError
from ..core.models import ChatHistoryItem, FinishReason, PromptResponse, SamplingParams


logger = logging.getLogger(__name__)

# 历史条目类型到对话模板角色
HISTORY_ROLES: Dict[str, str] = {
    "system": "system",
    "user": "user",
    "model": "assistant",
}

_END_OF_STREAM = object()


class ChatSession:
    """对话会话"""

    def __init__(self, context: BaseInferenceContext):
        self.context = context
        self._history: List[ChatHistoryItem] = []

    def set_chat_history(self, entries: Iterable[ChatHistoryItem]) -> None:
        """
        替换整个对话历史

        Args:
            entries: 新的历史条目，空列表表示清空

        Raises:
            ValidationError: 条目类型未知
        """
        entries = list(entries)
        for entry in entries:
            if entry.type not in HISTORY_ROLES:
                raise ValidationError(f"未知的历史条目类型: {entry.type}")
        self._history = entries

    def get_chat_history(self) -> List[ChatHistoryItem]:
        """返回对话历史的副本"""
        return list(self._history)

    def _build_messages(self, text: str) -> List[Dict[str, str]]:
        messages = [
            {"role": HISTORY_ROLES[entry.type], "content": entry.text}
            for entry in self._history
        ]
        messages.append({"role": "user", "content": text})
        return messages

    def _count_prompt_tokens(self, text: str) -> int:
        # 仅统计本轮提示词，不含历史和模板token
        try:
            return self.context.count_tokens(text)
        except Exception as e:
            logger.warning(f"统计提示词token失败: {e}")
            return 0

    async def prompt(
        self,
        text: str,
        sampling: SamplingParams,
        on_text_chunk: Optional[Callable[[str], None]] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> PromptResponse:
        """
        发送一轮用户输入并生成回复

        Args:
            text: 用户输入
            sampling: 采样参数
            on_text_chunk: 每个文本片段的回调，按生成顺序同步调用
            stop_event: 置位后在当前片段之后停止生成

        Returns:
            PromptResponse: 生成文本和结束原因

        Raises:
            InferenceError: 推理过程出错
        """
        messages = self._build_messages(text)
        prompt_token_count = await asyncio.to_thread(self._count_prompt_tokens, text)

        try:
            stream = self.context.stream_chat(messages, sampling)
        except InferenceError:
            raise
        except Exception as e:
            raise InferenceError(f"启动流式生成失败: {str(e)}") from e

        parts: List[str] = []
        finish_reason = FinishReason.STOP
        pending: Optional[asyncio.Future] = None
        try:
            while True:
                if stop_event is not None and stop_event.is_set():
                    logger.info("收到停止信号，提前结束生成")
                    break

                # shield: 被取消时工作线程里的 next() 仍会执行完，finally 中等待它返回
                pending = asyncio.ensure_future(asyncio.to_thread(next, stream, _END_OF_STREAM))
                try:
                    chunk = await asyncio.shield(pending)
                except InferenceError:
                    raise
                except Exception as e:
                    raise InferenceError(f"生成过程出错: {str(e)}") from e

                if chunk is _END_OF_STREAM:
                    break

                text_chunk, reason = chunk
                if text_chunk:
                    parts.append(text_chunk)
                    if on_text_chunk is not None:
                        on_text_chunk(text_chunk)

                if reason is not None:
                    if reason == "length":
                        finish_reason = FinishReason.LENGTH
                    break
        finally:
            if pending is not None and not pending.done():
                # 生成器正在执行时不能关闭
                await asyncio.wait([pending])
                if not pending.cancelled():
                    pending.exception()
            close = getattr(stream, 'close', None)
            if close is not None:
                close()

        response = "".join(parts)
        self._history = self._history + [
            ChatHistoryItem(type="user", text=text),
            ChatHistoryItem(type="model", text=response),
        ]

        return PromptResponse(
            text=response,
            finish_reason=finish_reason,
            prompt_token_count=prompt_token_count,
        )
