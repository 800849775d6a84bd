"""
AI client - OpenAI chat completions returning a JSON document.
"""

import json
import time
from typing import Any

import httpx
from structlog import get_logger

from gsc_gateway.observability.metrics import metrics

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are an SEO and website analytics expert. Provide concise, actionable insights."
)


class AIUnavailableError(Exception):
    """Raised when the provider fails or answers with something other than a JSON object."""


class AIClient:
    """Thin chat-completions client with a bounded timeout."""

    def __init__(
        self,
        api_key: str,
        api_url: str,
        model: str,
        http_client: httpx.AsyncClient,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.http_client = http_client
        self.timeout = httpx.Timeout(timeout_seconds)

    async def complete_json(self, prompt: str) -> dict[str, Any]:
        """
        Send a prompt and parse the first choice's content as a JSON object.

        Raises:
            AIUnavailableError: Transport failure, timeout, non-2xx or unparseable content
        """
        if not self.api_key:
            raise AIUnavailableError("OPENAI_API_KEY is not configured")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }
        started = time.monotonic()
        try:
            response = await self.http_client.post(
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise AIUnavailableError("AI provider timed out") from e
        except httpx.HTTPError as e:
            raise AIUnavailableError(f"AI provider unreachable: {e}") from e
        finally:
            metrics.ai_request_duration_seconds.observe(time.monotonic() - started)

        if not response.is_success:
            logger.warning("ai_request_failed", status=response.status_code, text=response.text[:300])
            raise AIUnavailableError(f"AI provider returned {response.status_code}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
            document = json.loads(content)
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise AIUnavailableError("AI provider returned unparseable content") from e

        if not isinstance(document, dict):
            raise AIUnavailableError("AI provider content is not a JSON object")
        return document
