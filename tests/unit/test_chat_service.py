"""Unit tests for the expert chat assistant."""

import pytest

from config.errors import EstimatorError, ErrorCode, ValidationError
from services.chat_service import (
    ERROR_REPLY,
    EXPERT_SYSTEM_PROMPT,
    MAX_QUESTION_LENGTH,
    MOCK_REPLY,
    ExpertChatService,
)


class TestExpertChatService:
    """Tests for ExpertChatService.ask."""

    @pytest.mark.asyncio
    async def test_answers_with_llm(self, mock_llm_service):
        service = ExpertChatService(llm_service=mock_llm_service, max_tokens=500)

        answer = await service.ask("  Sheet vs. liquid membrane?  ")

        assert answer == "Mock expert answer"
        kwargs = mock_llm_service.generate_with_system_prompt.call_args.kwargs
        assert kwargs["system_prompt"] == EXPERT_SYSTEM_PROMPT
        assert kwargs["user_message"] == 'Question: "Sheet vs. liquid membrane?"'
        assert kwargs["max_tokens"] == 500

    @pytest.mark.asyncio
    async def test_mock_reply_without_llm(self):
        assert await ExpertChatService().ask("What is bentonite?") == MOCK_REPLY

    @pytest.mark.asyncio
    async def test_error_reply_on_llm_failure(self, mock_llm_service):
        mock_llm_service.generate_with_system_prompt.side_effect = EstimatorError(
            code=ErrorCode.LLM_RATE_LIMIT, message="OpenAI rate limit exceeded"
        )
        service = ExpertChatService(llm_service=mock_llm_service)

        assert await service.ask("How do I cure crystalline?") == ERROR_REPLY

    @pytest.mark.asyncio
    @pytest.mark.parametrize("question", ["", "   ", None])
    async def test_empty_question_rejected(self, question):
        with pytest.raises(ValidationError) as exc_info:
            await ExpertChatService().ask(question)

        assert exc_info.value.code == ErrorCode.MISSING_FIELD

    @pytest.mark.asyncio
    async def test_long_question_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            await ExpertChatService().ask("x" * (MAX_QUESTION_LENGTH + 1))

        assert exc_info.value.code == ErrorCode.INVALID_FIELD
