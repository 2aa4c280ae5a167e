"""Chat-completions client for the vision inference endpoint.

Features:
- One shared httpx.AsyncClient (connection pool reused by concurrent calls)
- Bearer credential from InferenceConfig
- HEAD probe for input accessibility
- No retries: reliability comes from consensus runs, not repeated calls

Example:
    async with InferenceClient(config) as client:
        response = await client.chat(
            model="OpenGVLab/InternVL3_5-14B-Instruct",
            prompt="Is there a bird in this video?",
            input_ref="https://example.com/clip.mp4",
            max_tokens=400,
        )
        text = response["content"]
"""

import json
from typing import Any

import httpx

from .config import InferenceConfig


class InferenceError(RuntimeError):
    """Transport failure, non-2xx status or malformed response body."""


def build_payload(
    model: str,
    prompt: str,
    input_ref: str,
    max_tokens: int,
    media_type: str = "video_url",
) -> dict[str, Any]:
    """Request body: a text part with the prompt and a URL part with the input."""
    return {
        "model": model,
        "max_tokens": max_tokens,
        "messages": [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": media_type, media_type: {"url": input_ref}},
                ],
            }
        ],
    }


class InferenceClient:
    """Async client for an OpenAI-compatible vision endpoint."""

    def __init__(
        self,
        config: InferenceConfig,
        http: httpx.AsyncClient | None = None,
    ):
        self.config = config
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=config.timeout)

    async def __aenter__(self) -> "InferenceClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    @property
    def http(self) -> httpx.AsyncClient:
        return self._http

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    async def chat(
        self,
        model: str,
        prompt: str,
        input_ref: str,
        max_tokens: int,
    ) -> dict[str, Any]:
        """
        Make one chat completion request.

        Args:
            model: Model identifier
            prompt: Question text
            input_ref: Fetchable URL of the media to analyze
            max_tokens: Maximum tokens in the answer

        Returns:
            {
                "content": model answer text (None if the endpoint sent none),
                "usage": usage dict with token counts
            }

        Raises:
            InferenceError: on network errors, timeouts, non-2xx responses
                and bodies that are not JSON
        """
        payload = build_payload(
            model, prompt, input_ref, max_tokens, self.config.media_type
        )

        try:
            response = await self._http.post(
                self.config.completions_url,
                headers=self._headers(),
                json=payload,
            )
        except httpx.TimeoutException as e:
            raise InferenceError(f"Request timed out: {type(e).__name__}: {e}") from e
        except httpx.HTTPError as e:
            raise InferenceError(f"Network error: {type(e).__name__}: {e}") from e

        response_text = response.text
        if not response.is_success:
            raise InferenceError(
                f"Server error: {response.status_code} - {response_text[:500]}"
            )

        try:
            response_data = json.loads(response_text)
        except json.JSONDecodeError as e:
            raise InferenceError(
                f"JSON parsing error: {e.msg} (status {response.status_code}): "
                f"{response_text[:200]}"
            ) from e

        if not isinstance(response_data, dict):
            raise InferenceError(
                f"Unexpected response shape: {type(response_data).__name__}"
            )

        choices = response_data.get("choices") or [{}]
        choice = choices[0] if isinstance(choices, list) else None
        if not isinstance(choice, dict):
            raise InferenceError(
                f"Unexpected response shape: choices[0] is {type(choice).__name__}"
            )
        message = choice.get("message") or {}
        if not isinstance(message, dict):
            raise InferenceError(
                f"Unexpected response shape: message is {type(message).__name__}"
            )
        return {
            "content": message.get("content"),
            "usage": response_data.get("usage", {}),
        }

    async def probe(self, url: str) -> bool:
        """HEAD the input reference. 2xx (206 included) means accessible."""
        try:
            response = await self._http.head(url, follow_redirects=True)
        except httpx.HTTPError:
            return False
        return response.is_success
