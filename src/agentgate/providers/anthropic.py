"""Anthropic Messages API provider."""

from __future__ import annotations

import os
from typing import Optional

import httpx

from ..models.provider import CompletionResult
from .base import BaseProvider


class AnthropicProvider(BaseProvider):
    name = "anthropic"
    API_URL = "https://api.anthropic.com/v1/messages"

    def _get_api_key(self) -> Optional[str]:
        return self.config.get("api_key") or os.environ.get(
            self.config.get("api_key_env", "ANTHROPIC_API_KEY")
        )

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: Optional[float] = None,
        model: Optional[str] = None,
        max_tokens: int = 0,
    ) -> CompletionResult:
        api_key = self._get_api_key()
        if not api_key:
            env_var = self.config.get("api_key_env", "ANTHROPIC_API_KEY")
            return CompletionResult(
                success=False,
                error=f"API key not found in environment variable: {env_var}",
            )

        body = {
            "model": model or self.config.get("model", "claude-sonnet-4-5-20250929"),
            "max_tokens": max_tokens or self.config.get("max_tokens", 16000),
            "temperature": self._temperature(temperature),
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        headers = {
            "x-api-key": api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }
        timeout = self.common.get("timeout_seconds", 300)

        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(self.API_URL, json=body, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            return CompletionResult(success=False, error=f"{e.response.status_code} | {e.response.text}")
        except httpx.TimeoutException as e:
            return CompletionResult(success=False, error=f"Request timed out ({e})")
        except httpx.HTTPError as e:
            return CompletionResult(success=False, error=f"{type(e).__name__}: {e}")

        content = next(
            (block.get("text") for block in data.get("content", []) if block.get("type") == "text"),
            None,
        )
        usage = data.get("usage", {})
        return CompletionResult(
            success=True,
            content=content,
            tokens_used={
                "input": usage.get("input_tokens", 0),
                "output": usage.get("output_tokens", 0),
            },
        )
