"""
LLM client used by the Stage-2 classifier.

Thin wrapper over the openai SDK so any OpenAI-compatible endpoint (OpenAI,
OpenRouter, a local gateway) can be used by setting LLM_BASE_URL. Errors are
translated into the pipeline's own exceptions so callers never depend on SDK
exception types.
"""

from typing import Any, Dict, Optional

import openai
from openai import OpenAI

from .errors import ClassificationError, ModelUnavailableError


class LLMClient:
    """Single-turn chat completion against a configured model."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 1,
        client: Optional[Any] = None,
    ) -> None:
        self.model = model
        self._client = client or OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "LLMClient":
        return cls(
            api_key=cfg["LLM_API_KEY"],
            model=cfg.get("LLM_MODEL", "gpt-4o-mini"),
            base_url=cfg.get("LLM_BASE_URL"),
            timeout=cfg.get("LLM_TIMEOUT_SECONDS", 30.0),
            max_retries=cfg.get("LLM_MAX_RETRIES", 1),
        )

    def complete(self, system_prompt: str, user_prompt: str, max_tokens: int = 20) -> str:
        """
        Send one system + user message pair and return the reply text.

        Raises:
            ModelUnavailableError: timeout, connection failure, rate limit or 5xx
            ClassificationError: any other API error or an empty reply
        """
        try:
            resp = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=0,
                max_tokens=max_tokens,
            )
        except (openai.APITimeoutError, openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError) as e:
            raise ModelUnavailableError(f"{type(e).__name__}: {e}") from e
        except openai.OpenAIError as e:
            raise ClassificationError(f"{type(e).__name__}: {e}") from e

        try:
            content = resp.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise ClassificationError(f"Malformed completion response: {e}") from e
        if not content or not content.strip():
            raise ClassificationError("Empty completion response")
        return content.strip()
