import logging
from typing import Any, Optional

import httpx

from ..config import ENHANCER_TIMEOUT_SECONDS, OPENROUTER_API_KEY, OPENROUTER_MODEL

logger = logging.getLogger(__name__)


class OpenRouterService:
    """Client for OpenRouter chat completions"""

    BASE_URL = "https://openrouter.ai/api/v1/chat/completions"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = ENHANCER_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else OPENROUTER_API_KEY
        self.model = model or OPENROUTER_MODEL
        self.timeout = timeout
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def create_completion(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.2,
        max_tokens: int = 900,
    ) -> httpx.Response:
        """
        POST a chat completion and return the raw response.

        Raises:
            httpx.HTTPError: on transport failures and timeouts
        """
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(self.BASE_URL, json=payload, headers=headers)

        logger.debug(f"OpenRouter responded {response.status_code} for model {self.model}")
        return response

    @staticmethod
    def extract_content(body: Any) -> Optional[str]:
        """Text of the first choice, or None"""
        if not isinstance(body, dict):
            return None
        choices = body.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return None
        message = choices[0].get("message")
        if not isinstance(message, dict):
            return None
        content = message.get("content")
        return content if isinstance(content, str) else None
