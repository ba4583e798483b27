"""Async completion client wrapping an OpenAI-compatible chat API."""

from __future__ import annotations

import logging

import openai

from docanalyze.errors.exceptions import TransientError
from docanalyze.errors.retry import classify_openai_error
from docanalyze.remote.pricing import calculate_cost
from docanalyze.types import CompletionResponse, SamplingParams, TokenUsage

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = "You are a careful analyst of project documents."


class AsyncCompletionClient:
    """Sends one prompt per call and reports usage and cost.

    Retries are left to the RetryingTaskRunner; SDK errors are converted to
    TransientError / TerminalError so failures carry an ``error_type``.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        system_prompt: str = _SYSTEM_PROMPT,
    ) -> None:
        self._client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)
        self._system_prompt = system_prompt

    async def complete(
        self,
        provider: str,
        model: str,
        prompt: str,
        sampling: SamplingParams,
    ) -> CompletionResponse:
        """Send a single completion request and return the parsed response."""
        kwargs: dict = {
            "model": model,
            "messages": [
                {"role": "system", "content": self._system_prompt},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": sampling.max_tokens,
            "temperature": sampling.temperature,
        }
        if sampling.top_p is not None:
            kwargs["top_p"] = sampling.top_p

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.OpenAIError as exc:
            raise classify_openai_error(exc) from exc

        return self._parse_response(response, provider, model)

    async def close(self) -> None:
        await self._client.close()

    @staticmethod
    def _parse_response(
        response: openai.types.chat.ChatCompletion,
        provider: str,
        model: str,
    ) -> CompletionResponse:
        if not response.choices:
            raise TransientError("response has no choices", error_type="malformed_response")
        choice = response.choices[0]
        content = choice.message.content
        if not content:
            raise TransientError("response has empty content", error_type="malformed_response")

        usage = response.usage
        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0
        return CompletionResponse(
            content=content,
            model=response.model or model,
            provider=provider,
            usage=TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens),
            cost=calculate_cost(provider, model, input_tokens, output_tokens),
            data={"finish_reason": choice.finish_reason},
        )
