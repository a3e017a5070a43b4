"""Direct OpenAI-compatible chat completions provider (DeepSeek, OpenAI, self-hosted)."""

from __future__ import annotations

import json
from typing import Any

import httpx
import json_repair

from purrclaw.providers.base import LLMProvider, LLMResponse, ProviderError, ToolCallRequest


class OpenAICompatProvider(LLMProvider):
    """Talks to any `/chat/completions` endpoint that follows the OpenAI wire format."""

    def __init__(
        self,
        api_key: str,
        api_base: str,
        default_model: str,
        name: str = "openai-compatible",
        extra_headers: dict[str, str] | None = None,
        timeout: float = 120.0,
    ):
        super().__init__(api_key=api_key, api_base=api_base.rstrip("/"))
        self.default_model = default_model
        self.name = name
        self.extra_headers = extra_headers or {}
        self.timeout = timeout

    def get_default_model(self) -> str:
        return self.default_model

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.7,
    ) -> LLMResponse:
        payload: dict[str, Any] = {
            "model": model or self.default_model,
            "messages": [self._format_message(m) for m in messages],
            "max_tokens": max(1, max_tokens),
            "temperature": temperature,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            **self.extra_headers,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.api_base}/chat/completions",
                    headers=headers,
                    json=payload,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"{self.name} API error: {e.response.status_code} {self._error_detail(e.response)}",
                status_code=e.response.status_code,
            ) from e
        except httpx.TimeoutException as e:
            raise ProviderError(f"{self.name} API error: request timed out ({e})") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} API error: network failure ({e})") from e

        return self._parse_response(data)

    @staticmethod
    def _format_message(msg: dict[str, Any]) -> dict[str, Any]:
        """Normalize a transcript message into the wire format."""
        out: dict[str, Any] = {"role": msg.get("role"), "content": msg.get("content") or ""}

        tool_calls = msg.get("tool_calls")
        if tool_calls:
            formatted = []
            for tc in tool_calls:
                fn = tc.get("function")
                if isinstance(fn, dict):
                    name, arguments = fn.get("name"), fn.get("arguments")
                else:
                    name, arguments = tc.get("name"), json.dumps(tc.get("arguments") or {})
                formatted.append({
                    "id": tc.get("id"),
                    "type": tc.get("type") or "function",
                    "function": {"name": name, "arguments": arguments},
                })
            out["tool_calls"] = formatted

        if msg.get("tool_call_id"):
            out["role"] = "tool"
            out["tool_call_id"] = msg["tool_call_id"]

        return out

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:500]
        if isinstance(body, dict):
            err = body.get("error")
            if isinstance(err, dict) and err.get("message"):
                return str(err["message"])
            if body.get("message"):
                return str(body["message"])
        return response.text[:500]

    @staticmethod
    def _parse_response(data: dict[str, Any]) -> LLMResponse:
        choices = data.get("choices") or []
        if not choices:
            raise ProviderError("Malformed completion response: no choices")
        choice = choices[0] or {}
        message = choice.get("message") or {}

        tool_calls: list[ToolCallRequest] = []
        for tc in message.get("tool_calls") or []:
            fn = tc.get("function") or {}
            args = fn.get("arguments")
            if isinstance(args, str):
                args = json_repair.loads(args) if args.strip() else {}
            if not isinstance(args, dict):
                args = {}
            tool_calls.append(ToolCallRequest(id=tc.get("id", ""), name=fn.get("name", ""), arguments=args))

        usage = data.get("usage") or {}
        return LLMResponse(
            content=message.get("content") or "",
            tool_calls=tool_calls,
            finish_reason=choice.get("finish_reason") or "stop",
            usage={k: int(v) for k, v in usage.items() if isinstance(v, (int, float))},
            reasoning_content=message.get("reasoning_content"),
        )
