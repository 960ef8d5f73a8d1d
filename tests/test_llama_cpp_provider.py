"""
llama.cpp推理后端测试

测试中不加载真实模型，llama_cpp.Llama 全部被替换为模拟对象。
"""

from unittest.mock import Mock, patch

import pytest

from llm_native.core.exceptions import InferenceError, ModelLoadError
from llm_native.core.models import SamplingParams
from llm_native.inferencers.llama_cpp_provider import (
    MAX_DEFAULT_CONTEXT_SIZE,
    LlamaCppContext,
    LlamaCppModel,
    LlamaCppProvider,
    acquire_provider,
)


LLAMA_PATH = 'llm_native.inferencers.llama_cpp_provider.Llama'


@pytest.fixture
def model_file(tmp_path):
    """临时GGUF文件"""
    path = tmp_path / "model.gguf"
    path.write_bytes(b"GGUF")
    return str(path)


def make_vocab(context_length=None, architecture="qwen3"):
    metadata = {"general.architecture": architecture}
    if context_length is not None:
        metadata[f"{architecture}.context_length"] = str(context_length)
    return Mock(metadata=metadata)


class TestLlamaCppProvider:
    """llama.cpp推理后端测试类"""

    def test_init_without_llama_cpp(self):
        """测试未安装llama-cpp-python"""
        with patch(LLAMA_PATH, None):
            with pytest.raises(ModelLoadError, match="llama-cpp-python库未安装"):
                LlamaCppProvider()

    @pytest.mark.asyncio
    @patch(LLAMA_PATH)
    async def test_acquire_provider(self, mock_llama):
        """测试获取默认推理后端"""
        provider = await acquire_provider()
        assert isinstance(provider, LlamaCppProvider)

    @pytest.mark.asyncio
    @patch(LLAMA_PATH)
    async def test_load_model_success(self, mock_llama, model_file):
        """测试成功打开模型"""
        mock_llama.return_value = make_vocab(32768)

        model = await LlamaCppProvider().load_model(model_file, -1)

        assert isinstance(model, LlamaCppModel)
        assert model.model_path == model_file
        assert model.gpu_layers == -1
        assert model.trained_context_length == 32768
        mock_llama.assert_called_once_with(model_path=model_file, vocab_only=True, verbose=False)

    @pytest.mark.asyncio
    @patch(LLAMA_PATH)
    async def test_load_model_file_not_found(self, mock_llama, tmp_path):
        """测试模型文件不存在"""
        with pytest.raises(ModelLoadError, match="模型文件未找到"):
            await LlamaCppProvider().load_model(str(tmp_path / "missing.gguf"), 0)
        mock_llama.assert_not_called()

    @pytest.mark.asyncio
    @patch(LLAMA_PATH)
    async def test_load_model_unsupported_format(self, mock_llama, model_file):
        """测试模型格式不支持"""
        mock_llama.side_effect = ValueError("Failed to load model from file")

        with pytest.raises(ModelLoadError, match="GGUF模型加载失败") as exc_info:
            await LlamaCppProvider().load_model(model_file, 0)

        assert isinstance(exc_info.value.__cause__, ValueError)


class TestLlamaCppModel:
    """已打开模型测试类"""

    @pytest.mark.asyncio
    @patch(LLAMA_PATH)
    async def test_create_context_with_override(self, mock_llama):
        """测试指定上下文长度"""
        model = LlamaCppModel("/models/a.gguf", 20, make_vocab(32768))

        context = await model.create_context(2048)

        assert isinstance(context, LlamaCppContext)
        assert context.llm is mock_llama.return_value
        mock_llama.assert_called_once_with(
            model_path="/models/a.gguf",
            n_ctx=2048,
            n_gpu_layers=20,
            verbose=False,
            use_mmap=True,
            use_mlock=False,
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("trained,expected", [
        (131072, MAX_DEFAULT_CONTEXT_SIZE),
        (4096, 4096),
        (None, MAX_DEFAULT_CONTEXT_SIZE),
    ])
    async def test_create_context_default_size(self, trained, expected):
        """测试默认上下文长度取训练长度和上限的较小值"""
        model = LlamaCppModel("/models/a.gguf", -1, make_vocab(trained))

        with patch(LLAMA_PATH) as mock_llama:
            await model.create_context()

        assert mock_llama.call_args.kwargs["n_ctx"] == expected

    @pytest.mark.asyncio
    @patch(LLAMA_PATH)
    async def test_create_context_failure(self, mock_llama):
        """测试上下文创建失败"""
        mock_llama.side_effect = RuntimeError("failed to allocate KV cache")
        model = LlamaCppModel("/models/a.gguf", -1, make_vocab(4096))

        with pytest.raises(ModelLoadError, match="创建推理上下文失败"):
            await model.create_context()

    @pytest.mark.asyncio
    async def test_dispose_is_idempotent(self):
        """测试重复释放模型"""
        vocab = make_vocab(4096)
        model = LlamaCppModel("/models/a.gguf", -1, vocab)

        await model.dispose()
        await model.dispose()

        vocab.close.assert_called_once()
        with pytest.raises(ModelLoadError, match="模型已释放"):
            await model.create_context()

    def test_get_model_info(self):
        """测试获取模型信息"""
        model = LlamaCppModel("/models/a.gguf", 0, make_vocab(16384, architecture="phi3"))
        info = model.get_model_info()

        assert info == {
            "path": "/models/a.gguf",
            "type": "GGUF",
            "gpu_layers": 0,
            "architecture": "phi3",
            "trained_context_length": 16384,
        }


class TestLlamaCppContext:
    """推理上下文测试类"""

    def setup_method(self):
        """测试前准备"""
        self.llm = Mock()
        self.context = LlamaCppContext(self.llm)
        self.messages = [{"role": "user", "content": "Hi"}]

    def test_stream_chat_yields_content_and_finish_reason(self):
        """测试流式输出片段和结束原因"""
        self.llm.create_chat_completion.return_value = iter([
            {"choices": [{"delta": {"role": "assistant"}, "finish_reason": None}]},
            {"choices": [{"delta": {"content": "Hel"}, "finish_reason": None}]},
            {"choices": [{"delta": {"content": "lo"}, "finish_reason": None}]},
            {"choices": [{"delta": {}, "finish_reason": "length"}]},
        ])

        chunks = list(self.context.stream_chat(self.messages, SamplingParams(max_tokens=2)))

        assert chunks == [("Hel", None), ("lo", None), ("", "length")]

    def test_stream_chat_forwards_sampling(self):
        """测试下发采样参数"""
        self.llm.create_chat_completion.return_value = iter([])
        sampling = SamplingParams(max_tokens=64, temperature=0.2, top_p=0.5, top_k=10,
                                  repeat_penalty=1.3, stop=("\n\n",))

        list(self.context.stream_chat(self.messages, sampling))

        self.llm.create_chat_completion.assert_called_once_with(
            messages=self.messages,
            max_tokens=64,
            temperature=0.2,
            top_p=0.5,
            top_k=10,
            repeat_penalty=1.3,
            stop=["\n\n"],
            stream=True,
        )

    def test_stream_chat_without_stop_sequences(self):
        """测试没有停止序列时传入None"""
        self.llm.create_chat_completion.return_value = iter([])

        list(self.context.stream_chat(self.messages, SamplingParams()))

        assert self.llm.create_chat_completion.call_args.kwargs["stop"] is None

    def test_stream_chat_error_chunk(self):
        """测试输出中包含错误"""
        self.llm.create_chat_completion.return_value = iter([{"error": "decode failed"}])

        with pytest.raises(InferenceError, match="decode failed"):
            list(self.context.stream_chat(self.messages, SamplingParams()))

    def test_count_tokens(self):
        """测试统计token"""
        self.llm.tokenize.return_value = [1, 2, 3]

        assert self.context.count_tokens("abc") == 3
        self.llm.tokenize.assert_called_once_with(b"abc", add_bos=False, special=True)

    def test_context_size(self):
        """测试上下文长度"""
        self.llm.n_ctx.return_value = 2048
        assert self.context.context_size == 2048

    @pytest.mark.asyncio
    async def test_dispose_is_idempotent(self):
        """测试重复释放上下文"""
        await self.context.dispose()
        await self.context.dispose()

        self.llm.close.assert_called_once()
        assert self.context.context_size == 0
        assert self.context.count_tokens("abc") == 0
        with pytest.raises(InferenceError, match="已释放"):
            list(self.context.stream_chat(self.messages, SamplingParams()))
