"""Text generation client: Claude Agent SDK backend plus rate-limit retry."""

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Protocol

from claude_agent_sdk import (
    query,
    ClaudeAgentOptions,
    ResultMessage,
    AssistantMessage,
)
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from config.exceptions import (
    LLMError,
    LLMRateLimitError,
    LLMResponseParseError,
    StreamInterruptedError,
)
from config.settings import Settings
from tools.json_utils import parse_json_response

logger = logging.getLogger(__name__)

# Allow launching Agent SDK even when running inside a Claude Code session.
os.environ.pop("CLAUDECODE", None)

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class GenerationChunk:
    text: Optional[str] = None


class GenerationBackend(Protocol):
    """The remote capability the client drives."""

    def generate_streaming(
        self,
        model: str,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
        response_schema: Optional[dict] = None,
    ) -> AsyncIterator[GenerationChunk]: ...

    async def generate_once(
        self,
        model: str,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
        response_schema: Optional[dict] = None,
    ) -> GenerationChunk: ...


def _schema_instruction(response_schema: dict) -> str:
    return (
        "Respond with a single JSON value only, no prose and no code fences. "
        "It must conform to this JSON schema:\n"
        + json.dumps(response_schema, ensure_ascii=False)
    )


class AgentSDKBackend:
    """Backend over ``claude_agent_sdk.query()``.

    Each assistant text block is delivered as one fragment. ``temperature``
    is accepted for interface parity; the SDK has no sampling knob, so it
    is logged and ignored. A ``response_schema`` is rendered into the system
    prompt as a JSON-only instruction.
    """

    def _options(
        self,
        model: str,
        system_instruction: Optional[str],
        response_schema: Optional[dict],
    ) -> ClaudeAgentOptions:
        system_prompt = system_instruction or ""
        if response_schema:
            system_prompt = f"{system_prompt}\n\n{_schema_instruction(response_schema)}".strip()
        return ClaudeAgentOptions(system_prompt=system_prompt, model=model, max_turns=1)

    async def generate_streaming(
        self,
        model: str,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
        response_schema: Optional[dict] = None,
    ) -> AsyncIterator[GenerationChunk]:
        if temperature is not None:
            logger.debug("temperature=%s ignored by Agent SDK backend", temperature)
        options = self._options(model, system_instruction, response_schema)
        streamed = False
        error: Optional[str] = None
        final_text = ""
        # The query() generator uses anyio cancel scopes; it must be exhausted
        # in this task, so fragments are yielded from inside the loop and
        # errors are raised only after it ends.
        async for message in query(prompt=prompt, options=options):
            if isinstance(message, AssistantMessage):
                for block in message.content:
                    text = getattr(block, "text", None)
                    if text:
                        streamed = True
                        yield GenerationChunk(text=text)
            elif isinstance(message, ResultMessage):
                if message.is_error:
                    error = message.result or "unknown backend error"
                else:
                    final_text = message.result or ""
        if error:
            raise LLMError(f"Backend returned an error: {error}")
        if not streamed and final_text:
            yield GenerationChunk(text=final_text)

    async def generate_once(
        self,
        model: str,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
        response_schema: Optional[dict] = None,
    ) -> GenerationChunk:
        result_text = ""
        async for chunk in self.generate_streaming(
            model, prompt, system_instruction, temperature, response_schema,
        ):
            result_text += chunk.text or ""
        return GenerationChunk(text=result_text)


def is_rate_limit_error(exc: BaseException) -> bool:
    """True for explicit 429 status codes or quota/429 wording in the message."""
    for attr in ("status_code", "status", "code"):
        value = getattr(exc, attr, None)
        if value == 429 or value == "429":
            return True
    message = str(exc).lower()
    return "quota" in message or "429" in message


class GenerationClient:
    """Wraps a backend with a uniform retry policy and text cleanup.

    Rate-limit failures are retried ``retry_max_attempts`` times with delays
    doubling from ``retry_initial_delay``. Any other failure propagates at
    once as ``LLMError``.
    """

    def __init__(
        self,
        backend: Optional[GenerationBackend] = None,
        settings: Optional[Settings] = None,
        sleep: Optional[SleepFn] = None,
    ):
        self.settings = settings or Settings()
        self.backend = backend or AgentSDKBackend()
        self._sleep = sleep or asyncio.sleep
        self.total_calls = 0
        self.total_retries = 0

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception(is_rate_limit_error),
            stop=stop_after_attempt(self.settings.retry_max_attempts + 1),
            wait=wait_exponential(multiplier=self.settings.retry_initial_delay, exp_base=2),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )

    def _log_retry(self, retry_state) -> None:
        self.total_retries += 1
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            "Rate limited (attempt %d), retrying in %.1fs: %s",
            retry_state.attempt_number, delay, retry_state.outcome.exception(),
        )

    def _translate(self, exc: Exception) -> LLMError:
        if isinstance(exc, LLMError) and not is_rate_limit_error(exc):
            return exc
        if is_rate_limit_error(exc):
            return LLMRateLimitError(f"Rate limit retries exhausted: {exc}")
        return LLMError(f"Generation failed: {exc}")

    # ---- Streaming ----

    async def _open_stream(
        self,
        model: str,
        prompt: str,
        system_instruction: Optional[str],
        temperature: Optional[float],
    ) -> tuple[AsyncIterator[GenerationChunk], Optional[GenerationChunk]]:
        iterator = self.backend.generate_streaming(
            model, prompt, system_instruction=system_instruction, temperature=temperature,
        ).__aiter__()
        try:
            first = await iterator.__anext__()
        except StopAsyncIteration:
            return iterator, None
        return iterator, first

    async def stream(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """Yield non-empty text fragments exactly as the backend sent them.

        The retry covers opening the stream and receiving its first fragment.
        A failure after fragments were delivered raises
        ``StreamInterruptedError`` and is not retried.
        """
        model = model or self.settings.llm_model_drafting
        self.total_calls += 1
        logger.debug("Stream call: model=%s, prompt_chars=%d", model, len(prompt))

        try:
            iterator, first = await self._retrying()(
                self._open_stream, model, prompt, system_instruction, temperature,
            )
        except Exception as e:
            raise self._translate(e) from e

        if first is None:
            return
        delivered = 0
        text = first.text or ""
        if text:
            delivered += len(text)
            yield text
        try:
            async for chunk in iterator:
                text = chunk.text or ""
                if text:
                    delivered += len(text)
                    yield text
        except Exception as e:
            logger.error("Stream interrupted after %d chars: %s", delivered, e)
            raise StreamInterruptedError(f"Stream interrupted: {e}", delivered_chars=delivered) from e
        logger.debug("Stream complete: %d chars", delivered)

    # ---- Single shot ----

    async def generate_once(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        response_schema: Optional[dict] = None,
    ) -> str:
        model = model or self.settings.llm_model_analysis
        self.total_calls += 1
        logger.debug("Single-shot call: model=%s, structured=%s", model, response_schema is not None)
        try:
            chunk = await self._retrying()(
                self.backend.generate_once,
                model, prompt,
                system_instruction=system_instruction,
                temperature=temperature,
                response_schema=response_schema,
            )
        except Exception as e:
            raise self._translate(e) from e
        return (chunk.text if chunk else None) or ""

    async def generate_json(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        response_schema: Optional[dict] = None,
    ) -> Any:
        """Single-shot call decoded as JSON.

        Raises:
            LLMResponseParseError: If the response cannot be parsed as JSON.
        """
        text = await self.generate_once(
            prompt, system_instruction, model, temperature, response_schema,
        )
        try:
            return parse_json_response(text)
        except ValueError as e:
            raise LLMResponseParseError(str(e), raw_response=text) from e

    def get_usage_summary(self) -> dict:
        """Return call count statistics."""
        return {"total_calls": self.total_calls, "total_retries": self.total_retries}
