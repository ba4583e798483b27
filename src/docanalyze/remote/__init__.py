"""Remote completion backend: OpenAI-compatible client, pricing and prompts."""

from docanalyze.remote.client import AsyncCompletionClient
from docanalyze.remote.pricing import calculate_cost
from docanalyze.remote.prompt import build_prompt

__all__ = ["AsyncCompletionClient", "build_prompt", "calculate_cost"]
