"""Claude Agent SDK wrapper used for every text generation call."""

import asyncio
import logging
import os
from typing import Callable, Optional

from claude_agent_sdk import (
    query,
    ClaudeAgentOptions,
    ResultMessage,
    AssistantMessage,
)

from config.settings import Settings
from tools.llm_client import parse_json_response
from tools.retry import async_retry
from config.exceptions import (
    LLMError,
    LLMRateLimitError,
    LLMTimeoutError,
    LLMResponseParseError,
)

logger = logging.getLogger(__name__)

# Allow launching Agent SDK even when running inside a Claude Code session.
# The SDK checks for this env var and refuses to start if set.
os.environ.pop("CLAUDECODE", None)

_RATE_LIMIT_MARKERS = ("429", "quota", "rate limit", "rate_limit", "exhausted", "overloaded")
_TIMEOUT_MARKERS = ("timeout", "timed out", "deadline")


def classify_error(error: Exception) -> LLMError:
    """Map a raw SDK/transport failure onto the LLMError hierarchy.

    Rate-limit and timeout errors are transient and retried; everything else
    surfaces as a plain LLMError.
    """
    if isinstance(error, LLMError):
        return error
    if isinstance(error, asyncio.TimeoutError):
        return LLMTimeoutError("Agent SDK call timed out")
    text = str(error).lower()
    if any(marker in text for marker in _RATE_LIMIT_MARKERS):
        return LLMRateLimitError(f"Agent SDK rate limited: {error}")
    if any(marker in text for marker in _TIMEOUT_MARKERS):
        return LLMTimeoutError(f"Agent SDK call timed out: {error}")
    return LLMError(f"Agent SDK query failed: {error}")


class AgentSDKClient:
    """Claude Agent SDK wrapper.

    Uses claude_agent_sdk.query() for all LLM interactions. Authentication is
    handled by the Claude Code CLI. Transient failures (rate limits, timeouts)
    are retried with exponential backoff before they reach the caller.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.total_calls = 0

    async def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        on_event: Optional[Callable[[dict], None]] = None,
    ) -> str:
        """Send a request and return the text result.

        Args:
            system_prompt: System message guiding the model's behavior.
            user_prompt: User message content.
            model: Model name override. Defaults to writing model.
            timeout: Per-attempt timeout in seconds. Defaults to
                ``fast_task_timeout_seconds``.
            on_event: Optional callback fired with progress events:
                      {"type": "start"}                  — an attempt began
                      {"type": "thinking", "text": str}  — model is reasoning
                      {"type": "text",     "text": str}  — a text block arrived
                      {"type": "result"}                 — final result ready

        Returns:
            The model's text response.

        Raises:
            LLMRateLimitError: Still rate limited after all retries.
            LLMTimeoutError: Still timing out after all retries.
            LLMError: Any other failure.
        """
        model = model or self.settings.llm_model_writing
        timeout = timeout or self.settings.fast_task_timeout_seconds
        return await async_retry(
            self._query_once,
            system_prompt,
            user_prompt,
            model,
            timeout,
            on_event,
            retries=self.settings.llm_max_retries,
            backoff=self.settings.llm_retry_backoff,
            exceptions=(LLMRateLimitError, LLMTimeoutError),
        )

    async def _query_once(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        timeout: float,
        on_event: Optional[Callable[[dict], None]],
    ) -> str:
        self.total_calls += 1
        logger.debug("AgentSDK call: model=%s, timeout=%.0fs", model, timeout)
        if on_event:
            on_event({"type": "start"})
        try:
            result_text = await asyncio.wait_for(
                self._collect(system_prompt, user_prompt, model, on_event),
                timeout=timeout,
            )
        except Exception as e:
            raise classify_error(e) from e

        if not result_text:
            logger.warning("AgentSDK returned no content")
        return result_text

    async def _collect(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        on_event: Optional[Callable[[dict], None]],
    ) -> str:
        result_text = ""
        streamed: list[str] = []
        # Do NOT return/break early from inside the async for loop: query()
        # uses anyio cancel scopes and must be exhausted in the same task.
        async for message in query(
            prompt=user_prompt,
            options=ClaudeAgentOptions(
                system_prompt=system_prompt,
                model=model,
                max_turns=1,
            ),
        ):
            if isinstance(message, ResultMessage):
                result_text = message.result or ""
                logger.debug(
                    "AgentSDK result: %d chars, cost=$%s",
                    len(result_text),
                    message.total_cost_usd,
                )
                if on_event:
                    on_event({"type": "result"})
            elif isinstance(message, AssistantMessage):
                for block in message.content:
                    thinking = getattr(block, "thinking", None)
                    if thinking is not None:
                        if thinking and on_event:
                            on_event({"type": "thinking", "text": thinking})
                        continue
                    text = getattr(block, "text", None)
                    if text:
                        streamed.append(text)
                        if on_event:
                            on_event({"type": "text", "text": text})
        return result_text or "".join(streamed)

    async def chat_json(
        self,
        system_prompt: str,
        user_prompt: str,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> dict:
        """Send a request and parse the response as JSON.

        Raises:
            LLMResponseParseError: If response cannot be parsed as JSON.
        """
        text = await self.chat(system_prompt, user_prompt, model, timeout)
        try:
            return parse_json_response(text)
        except ValueError as e:
            raise LLMResponseParseError(str(e), raw_response=text) from e

    def get_usage_summary(self) -> dict:
        """Return call count statistics."""
        return {"total_calls": self.total_calls}
