"""Unit tests for LLM service."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from tenacity import wait_none

from config.errors import EstimatorError, ErrorCode
from services.llm_service import LLMService, strip_code_fences


@pytest.fixture
def llm_service(mock_chat_openai):
    """LLMService with a mocked ChatOpenAI client."""
    service = LLMService(api_key="test-key")
    service._client = mock_chat_openai
    return service


@pytest.fixture
def no_retry_wait(monkeypatch):
    """Skip tenacity backoff sleeps."""
    monkeypatch.setattr(LLMService.generate.retry, "wait", wait_none())


class TestLLMService:
    """Tests for LLMService."""

    def test_initialization(self):
        """Test LLMService initialization."""
        service = LLMService(api_key="test-key", model="gpt-4o-mini", temperature=0.5)

        assert service.model == "gpt-4o-mini"
        assert service.temperature == 0.5
        assert service.api_key == "test-key"
        assert service.total_tokens_used == 0

    def test_from_settings_without_key(self):
        """No API key means no service (mock mode)."""
        settings = MagicMock(openai_api_key=None)
        assert LLMService.from_settings(settings) is None

    def test_from_settings(self):
        settings = MagicMock(openai_api_key="sk-test", llm_model="gpt-4o", llm_temperature=0.2)

        service = LLMService.from_settings(settings, model="gpt-4o-mini")

        assert service.model == "gpt-4o-mini"
        assert service.api_key == "sk-test"

    def test_client_created_lazily(self):
        with patch('services.llm_service.ChatOpenAI') as mock_chat:
            service = LLMService(api_key="test-key")
            mock_chat.assert_not_called()

            service.client
            service.client

            mock_chat.assert_called_once_with(model="gpt-4o", temperature=0.2, api_key="test-key")

    @pytest.mark.asyncio
    async def test_generate_tracks_tokens(self, llm_service):
        """Test generate returns content and accumulates token usage."""
        from langchain_core.messages import HumanMessage

        result = await llm_service.generate([HumanMessage(content="Hello")])
        await llm_service.generate([HumanMessage(content="Again")])

        assert result == {"content": "Mock response", "tokens_used": 100}
        assert llm_service.total_tokens_used == 200

    @pytest.mark.asyncio
    async def test_generate_passes_options(self, llm_service, mock_chat_openai):
        from langchain_core.messages import HumanMessage

        await llm_service.generate([HumanMessage(content="Hi")], max_tokens=500, json_mode=True)

        kwargs = mock_chat_openai.ainvoke.call_args.kwargs
        assert kwargs["max_tokens"] == 500
        assert kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_image_is_sent_as_multimodal_content(self, llm_service, mock_chat_openai):
        await llm_service.generate_with_system_prompt(
            system_prompt="You are an estimator.",
            user_message="Analyze this.",
            image_url="https://storage.example.com/blueprints/1_plan.png"
        )

        messages = mock_chat_openai.ainvoke.call_args.args[0]
        content = messages[1].content
        assert content[0] == {"type": "text", "text": "Analyze this."}
        assert content[1]["image_url"] == {
            "url": "https://storage.example.com/blueprints/1_plan.png",
            "detail": "high",
        }

    @pytest.mark.asyncio
    async def test_generate_json(self, llm_service, mock_chat_openai):
        """Test generate_json method."""
        mock_chat_openai.ainvoke.return_value = MagicMock(
            content='{"estimated_area": 1200, "complexity_score": 6}',
            response_metadata={"token_usage": {"total_tokens": 50}}
        )

        result = await llm_service.generate_json(
            system_prompt="Return JSON.",
            user_message="Analyze the deck."
        )

        assert result["content"]["estimated_area"] == 1200
        assert result["tokens_used"] == 50

    @pytest.mark.asyncio
    async def test_generate_json_handles_markdown(self, llm_service, mock_chat_openai):
        """Test generate_json handles markdown code blocks."""
        mock_chat_openai.ainvoke.return_value = MagicMock(
            content='```json\n{"result": "success"}\n```',
            response_metadata={"token_usage": {"total_tokens": 50}}
        )

        result = await llm_service.generate_json(
            system_prompt="Return JSON.",
            user_message="Give me JSON."
        )

        assert result["content"]["result"] == "success"

    @pytest.mark.asyncio
    async def test_generate_json_invalid_response(self, llm_service, mock_chat_openai):
        """Test generate_json handles invalid JSON."""
        mock_chat_openai.ainvoke.return_value = MagicMock(
            content='This is not valid JSON',
            response_metadata={"token_usage": {"total_tokens": 50}}
        )

        with pytest.raises(EstimatorError) as exc_info:
            await llm_service.generate_json(
                system_prompt="Return JSON.",
                user_message="Give me JSON."
            )

        assert exc_info.value.code == ErrorCode.LLM_ERROR

    @pytest.mark.asyncio
    async def test_generate_json_rejects_arrays(self, llm_service, mock_chat_openai):
        mock_chat_openai.ainvoke.return_value = MagicMock(content='[1, 2]', response_metadata={})

        with pytest.raises(EstimatorError) as exc_info:
            await llm_service.generate_json(system_prompt="Return JSON.", user_message="x")

        assert exc_info.value.code == ErrorCode.LLM_ERROR

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self, llm_service, mock_chat_openai, no_retry_wait):
        """Rate-limit errors are retried before succeeding."""
        from langchain_core.messages import HumanMessage

        mock_chat_openai.ainvoke = AsyncMock(side_effect=[
            Exception("Error code: 429 - rate_limit_exceeded"),
            MagicMock(content="ok", response_metadata={"token_usage": {"total_tokens": 5}}),
        ])

        result = await llm_service.generate([HumanMessage(content="Hi")])

        assert result["content"] == "ok"
        assert mock_chat_openai.ainvoke.await_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_gives_up_after_three_attempts(
        self, llm_service, mock_chat_openai, no_retry_wait
    ):
        from langchain_core.messages import HumanMessage

        mock_chat_openai.ainvoke = AsyncMock(side_effect=Exception("Rate limit reached"))

        with pytest.raises(EstimatorError) as exc_info:
            await llm_service.generate([HumanMessage(content="Hi")])

        assert exc_info.value.code == ErrorCode.LLM_RATE_LIMIT
        assert mock_chat_openai.ainvoke.await_count == 3

    @pytest.mark.asyncio
    async def test_context_length_not_retried(self, llm_service, mock_chat_openai):
        from langchain_core.messages import HumanMessage

        mock_chat_openai.ainvoke = AsyncMock(
            side_effect=Exception("This model's maximum context length is 128000 tokens")
        )

        with pytest.raises(EstimatorError) as exc_info:
            await llm_service.generate([HumanMessage(content="Hi")])

        assert exc_info.value.code == ErrorCode.LLM_CONTEXT_TOO_LONG
        assert mock_chat_openai.ainvoke.await_count == 1


class TestStripCodeFences:
    """Tests for strip_code_fences."""

    def test_strips_json_fence(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_leaves_plain_content(self):
        assert strip_code_fences('  {"a": 1} ') == '{"a": 1}'
