"""LLM service for the estimator.

Provides LangChain/OpenAI integration for project analysis (vision + JSON)
and the expert chat assistant.
"""

import json
from typing import Dict, Any, Optional, List, Union

import structlog
from langchain_openai import ChatOpenAI
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from config.errors import EstimatorError, ErrorCode

logger = structlog.get_logger(__name__)

DEFAULT_MODEL = "gpt-4o"
DEFAULT_TEMPERATURE = 0.2

JSON_INSTRUCTION = (
    "IMPORTANT: You MUST respond with valid JSON only. "
    "No markdown, no explanation, just JSON."
)


def _is_rate_limited(error: BaseException) -> bool:
    return isinstance(error, EstimatorError) and error.code == ErrorCode.LLM_RATE_LIMIT


def strip_code_fences(content: str) -> str:
    """Remove a surrounding markdown code block from model output."""
    content = content.strip()
    if content.startswith("```json"):
        content = content[7:]
    if content.startswith("```"):
        content = content[3:]
    if content.endswith("```"):
        content = content[:-3]
    return content.strip()


class LLMService:
    """Service for LLM operations using LangChain.

    Provides a wrapper around ChatOpenAI with token tracking
    and error handling. Configuration is passed in explicitly;
    use ``from_settings`` at the composition root.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        temperature: float = DEFAULT_TEMPERATURE
    ):
        """Initialize LLMService.

        Args:
            api_key: OpenAI API key.
            model: Model name (must be vision-capable for image analysis).
            temperature: Sampling temperature.
        """
        self.model = model
        self.temperature = temperature
        self.api_key = api_key

        self._client: Optional[ChatOpenAI] = None
        self._total_tokens_used = 0

    @classmethod
    def from_settings(cls, settings, model: Optional[str] = None) -> Optional["LLMService"]:
        """Build a service from Settings, or None when no API key is configured."""
        if not settings.openai_api_key:
            return None
        return cls(
            api_key=settings.openai_api_key,
            model=model or settings.llm_model,
            temperature=settings.llm_temperature,
        )

    @property
    def client(self) -> ChatOpenAI:
        """Get LangChain ChatOpenAI client (lazy initialization)."""
        if self._client is None:
            self._client = ChatOpenAI(
                model=self.model,
                temperature=self.temperature,
                api_key=self.api_key
            )
        return self._client

    @property
    def total_tokens_used(self) -> int:
        """Get total tokens used across all calls."""
        return self._total_tokens_used

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception(_is_rate_limited),
        reraise=True,
    )
    async def generate(
        self,
        messages: List[BaseMessage],
        max_tokens: Optional[int] = None,
        json_mode: bool = False
    ) -> Dict[str, Any]:
        """Generate a response from the LLM.

        Rate-limit failures are retried with exponential backoff.

        Args:
            messages: List of LangChain messages.
            max_tokens: Optional max tokens for response.
            json_mode: Request a JSON object response format.

        Returns:
            Dict with content and token usage.

        Raises:
            EstimatorError: If LLM call fails.
        """
        try:
            kwargs: Dict[str, Any] = {}
            if max_tokens:
                kwargs["max_tokens"] = max_tokens
            if json_mode:
                kwargs["response_format"] = {"type": "json_object"}

            response = await self.client.ainvoke(messages, **kwargs)

            tokens_used = 0
            if hasattr(response, "response_metadata"):
                usage = response.response_metadata.get("token_usage", {})
                tokens_used = usage.get("total_tokens", 0)
                self._total_tokens_used += tokens_used

            logger.info(
                "llm_generated",
                model=self.model,
                tokens_used=tokens_used,
                content_length=len(response.content)
            )

            return {
                "content": response.content,
                "tokens_used": tokens_used
            }

        except EstimatorError:
            raise
        except Exception as e:
            error_msg = str(e)

            if "rate_limit" in error_msg.lower() or "rate limit" in error_msg.lower():
                logger.warning("llm_rate_limited", model=self.model)
                raise EstimatorError(
                    code=ErrorCode.LLM_RATE_LIMIT,
                    message="OpenAI rate limit exceeded",
                    details={"original_error": error_msg}
                )
            elif "context_length" in error_msg.lower() or "maximum context" in error_msg.lower():
                raise EstimatorError(
                    code=ErrorCode.LLM_CONTEXT_TOO_LONG,
                    message="Input too long for model context",
                    details={"original_error": error_msg}
                )
            else:
                raise EstimatorError(
                    code=ErrorCode.LLM_ERROR,
                    message=f"LLM generation failed: {error_msg}",
                    details={"original_error": error_msg}
                )

    async def generate_with_system_prompt(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: Optional[int] = None,
        image_url: Optional[str] = None,
        json_mode: bool = False
    ) -> Dict[str, Any]:
        """Generate a response with system prompt.

        Args:
            system_prompt: System prompt for context.
            user_message: User message/query.
            max_tokens: Optional max tokens for response.
            image_url: Optional image (blueprint/photo URL) sent alongside the text.
            json_mode: Request a JSON object response format.

        Returns:
            Dict with content and token usage.
        """
        user_content: Union[str, List[Dict[str, Any]]] = user_message
        if image_url:
            user_content = [
                {"type": "text", "text": user_message},
                {"type": "image_url", "image_url": {"url": image_url, "detail": "high"}},
            ]

        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_content)
        ]
        return await self.generate(messages, max_tokens, json_mode=json_mode)

    async def generate_json(
        self,
        system_prompt: str,
        user_message: str,
        max_tokens: Optional[int] = None,
        image_url: Optional[str] = None
    ) -> Dict[str, Any]:
        """Generate a JSON response.

        Adds JSON formatting instructions to the system prompt and requests
        the JSON response format.

        Returns:
            Dict with parsed JSON content and token usage.

        Raises:
            EstimatorError: If response is not a valid JSON object.
        """
        result = await self.generate_with_system_prompt(
            f"{system_prompt}\n\n{JSON_INSTRUCTION}",
            user_message,
            max_tokens,
            image_url=image_url,
            json_mode=True
        )

        try:
            parsed = json.loads(strip_code_fences(result["content"]))
        except json.JSONDecodeError as e:
            raise EstimatorError(
                code=ErrorCode.LLM_ERROR,
                message="LLM did not return valid JSON",
                details={
                    "parse_error": str(e),
                    "raw_content": result["content"][:500]
                }
            )

        if not isinstance(parsed, dict):
            raise EstimatorError(
                code=ErrorCode.LLM_ERROR,
                message="LLM returned JSON that is not an object",
                details={"raw_content": result["content"][:500]}
            )

        return {
            "content": parsed,
            "tokens_used": result["tokens_used"]
        }
