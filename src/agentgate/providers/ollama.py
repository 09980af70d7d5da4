"""Ollama local inference provider."""

from __future__ import annotations

from typing import Optional

import httpx

from ..models.provider import CompletionResult
from .base import BaseProvider


class OllamaProvider(BaseProvider):
    name = "ollama"

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: Optional[float] = None,
        model: Optional[str] = None,
        max_tokens: int = 0,
    ) -> CompletionResult:
        endpoint = self.config.get("endpoint", "http://localhost:11434")
        timeout = self.common.get("timeout_seconds", 300)

        options: dict = {"temperature": self._temperature(temperature)}
        if max_tokens:
            options["num_predict"] = max_tokens
        body = {
            "model": model or self.config.get("model", "llama3.1:70b"),
            "system": system_prompt,
            "prompt": user_prompt,
            "stream": False,
            "options": options,
        }

        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(f"{endpoint.rstrip('/')}/api/generate", json=body)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            return CompletionResult(success=False, error=f"{e.response.status_code} | {e.response.text}")
        except httpx.HTTPError as e:
            return CompletionResult(success=False, error=str(e) or type(e).__name__)

        tokens = None
        if "prompt_eval_count" in data or "eval_count" in data:
            tokens = {
                "input": data.get("prompt_eval_count", 0),
                "output": data.get("eval_count", 0),
            }
        return CompletionResult(success=True, content=data.get("response", ""), tokens_used=tokens)
