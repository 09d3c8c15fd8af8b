"""
LLM client for schema-constrained chat completions and tool calling
"""
import asyncio
import json
import logging
import os
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

import aiohttp
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class LLMError(Exception):
    """Raised when an LLM call fails after retries or returns an invalid payload"""


def _key_preview(api_key: str) -> str:
    return f"...{api_key[-8:]}" if len(api_key) > 8 else "..."


class LLMClient:
    """
    Thin async client over an OpenAI-compatible chat/completions endpoint.

    Every structured call sends a JSON schema derived from a pydantic model
    and validates the reply against that model, so callers always receive a
    typed object or an LLMError. The credential is passed per call so the
    caller decides which rate-limit bucket a request lands in.
    """

    def __init__(self, model: Optional[str] = None, base_url: Optional[str] = None,
                 timeout_seconds: Optional[float] = None, max_retries: Optional[int] = None):
        self.model = model or os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.api_base_url = (base_url or os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")).rstrip("/")
        self.timeout_seconds = timeout_seconds or float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
        self.max_retries = max_retries or int(os.getenv("LLM_MAX_RETRIES", "3"))
        self.temperature = 0.1

        logger.info(f"LLM Configuration - Model: {self.model}, Base URL: {self.api_base_url}, "
                    f"Timeout: {self.timeout_seconds}s, Max retries: {self.max_retries}")

    async def _post_chat(self, payload: Dict[str, Any], api_key: str) -> Dict[str, Any]:
        """POST to chat/completions with exponential backoff on 429, 5xx and transport errors"""
        url = f"{self.api_base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json"
        }
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        base_delay = 1

        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                async with aiohttp.ClientSession(timeout=timeout) as session:
                    async with session.post(url, headers=headers, json=payload) as response:
                        if response.status == 429 or response.status >= 500:
                            body = await response.text()
                            raise aiohttp.ClientResponseError(
                                response.request_info, response.history,
                                status=response.status, message=body[:200]
                            )
                        if response.status == 401:
                            logger.error(f"LLM API unauthorized for key {_key_preview(api_key)}")
                        elif response.status == 400:
                            logger.error(f"LLM API bad request. Response: {await response.text()}")

                        response.raise_for_status()
                        return await response.json()
            except aiohttp.ClientResponseError as e:
                # Client errors other than rate limiting will not improve on retry
                if e.status != 429 and e.status < 500:
                    raise LLMError(f"LLM request rejected ({e.status}): {e.message}") from e
                last_error = e
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = e

            if attempt < self.max_retries - 1:
                delay = base_delay * (2 ** attempt)
                logger.warning(f"🔄 LLM call failed ({last_error!r}), retrying in {delay} seconds...")
                await asyncio.sleep(delay)

        logger.error(f"❌ LLM call failed after {self.max_retries} attempts: {last_error!r}")
        raise LLMError(f"LLM call failed after {self.max_retries} attempts: {last_error}")

    @staticmethod
    def _as_messages(prompt: Union[str, List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        if isinstance(prompt, str):
            return [{"role": "user", "content": prompt}]
        return prompt

    async def invoke_structured(self, prompt: Union[str, List[Dict[str, Any]]], schema: Type[SchemaT],
                                api_key: str, model: Optional[str] = None) -> SchemaT:
        """
        Run one chat completion constrained to `schema`.

        Args:
            prompt: User prompt text or a full message list
            schema: Pydantic model describing the expected JSON object
            api_key: Credential for this call
            model: Optional model override

        Returns:
            An instance of `schema`
        """
        payload = {
            "model": model or self.model,
            "messages": self._as_messages(prompt),
            "temperature": self.temperature,
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": schema.__name__,
                    "schema": schema.model_json_schema()
                }
            }
        }

        result = await self._post_chat(payload, api_key)
        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMError(f"Malformed LLM response: {e}") from e

        if not content:
            raise LLMError("LLM returned an empty response")

        try:
            return schema.model_validate_json(content)
        except ValidationError as e:
            logger.debug(f"Raw LLM response that failed {schema.__name__} validation: {content[:500]}")
            raise LLMError(f"LLM response did not match {schema.__name__}: {e.error_count()} errors") from e

    async def invoke_with_tools(self, messages: List[Dict[str, Any]], tools: List[Dict[str, Any]],
                                api_key: str, model: Optional[str] = None) -> Dict[str, Any]:
        """
        Run one chat completion with tool definitions bound.

        Returns the assistant message dict; `tool_calls` is present when the
        model asked for tools. Tool call arguments are left as JSON strings.
        """
        payload = {
            "model": model or self.model,
            "messages": messages,
            "temperature": self.temperature,
            "tools": tools
        }

        result = await self._post_chat(payload, api_key)
        try:
            return result["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMError(f"Malformed LLM response: {e}") from e


def parse_tool_arguments(tool_call: Dict[str, Any]) -> Dict[str, Any]:
    """Decode the JSON-encoded arguments of an OpenAI tool call"""
    raw = tool_call.get("function", {}).get("arguments") or "{}"
    try:
        args = json.loads(raw)
    except json.JSONDecodeError as e:
        raise LLMError(f"Tool call arguments are not valid JSON: {raw[:200]}") from e
    if not isinstance(args, dict):
        raise LLMError("Tool call arguments must be a JSON object")
    return args
