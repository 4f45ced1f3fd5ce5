"""Waterproofing expert chat assistant."""

from typing import Optional

import structlog

from config.errors import EstimatorError, ErrorCode, ValidationError
from services.llm_service import LLMService

logger = structlog.get_logger(__name__)

DEFAULT_MAX_TOKENS = 500
MAX_QUESTION_LENGTH = 4000

GREETING = (
    "Hello! I'm AquaBot, your AI waterproofing expert. "
    "Ask me anything about materials, techniques, or project challenges."
)

EXPERT_SYSTEM_PROMPT = (
    "You are AquaBot, a world-class expert in commercial waterproofing. Your knowledge "
    "covers materials (like liquid membranes, sheet membranes, hot-applied rubberized "
    "asphalt, bentonite, crystalline systems), application techniques, industry standards "
    "(ASTM, ACI), problem diagnosis, and safety protocols.\n\n"
    "A commercial contractor has asked you a question. Provide a clear, professional, and "
    "helpful response. If the question is outside of waterproofing, politely state that it's "
    "outside your area of expertise."
)

EXAMPLE_QUESTIONS = [
    "What are the pros and cons of sheet membrane vs. liquid-applied membrane?",
    "Describe the ideal surface preparation for a hot-applied rubberized asphalt system.",
    "How do I diagnose the source of a leak in a below-grade foundation wall?",
    "What are the safety requirements for working in a confined space like an elevator pit?",
]

MOCK_REPLY = (
    "I'm a waterproofing expert assistant. For a full AI experience, please configure "
    "your OpenAI API key. I can help with general waterproofing questions, material "
    "selection, and best practices."
)

ERROR_REPLY = (
    "I'm experiencing technical difficulties. Please try again later or contact "
    "support if the issue persists."
)


class ExpertChatService:
    """Answers single waterproofing questions.

    Args:
        llm_service: Configured LLMService, or None for the demo reply.
        max_tokens: Response token budget.
    """

    def __init__(
        self,
        llm_service: Optional[LLMService] = None,
        max_tokens: int = DEFAULT_MAX_TOKENS
    ):
        self.llm_service = llm_service
        self.max_tokens = max_tokens

    async def ask(self, question: str) -> str:
        """Answer a question.

        Raises:
            ValidationError: If the question is empty or too long.
        """
        question = (question or "").strip()
        if not question:
            raise ValidationError("Question must not be empty", field="question",
                                  code=ErrorCode.MISSING_FIELD)
        if len(question) > MAX_QUESTION_LENGTH:
            raise ValidationError(
                f"Question is longer than {MAX_QUESTION_LENGTH} characters",
                field="question",
                code=ErrorCode.INVALID_FIELD
            )

        if self.llm_service is None:
            logger.warning("expert_chat_mock_mode")
            return MOCK_REPLY

        try:
            result = await self.llm_service.generate_with_system_prompt(
                system_prompt=EXPERT_SYSTEM_PROMPT,
                user_message=f'Question: "{question}"',
                max_tokens=self.max_tokens
            )
        except EstimatorError as e:
            logger.error("expert_chat_failed", code=e.code, error=e.message)
            return ERROR_REPLY

        return result["content"]
