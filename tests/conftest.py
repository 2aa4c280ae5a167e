"""Shared pytest fixtures for vision_detect tests."""

import asyncio
import json

import httpx
import pytest

from vision_detect.api import InferenceClient
from vision_detect.config import InferenceConfig
from vision_detect.detection import AttemptResult, Timings

API_URL = "https://inference.test"


def chat_response(content) -> httpx.Response:
    """A chat-completions response carrying `content` as the answer text."""
    return httpx.Response(
        200,
        json={
            "choices": [{"message": {"role": "assistant", "content": content}}],
            "usage": {"prompt_tokens": 10, "completion_tokens": 5},
        },
    )


class FakeEndpoint:
    """MockTransport handler: HEAD probes succeed, POSTs return queued answers.

    Answers are handed out in request order and the last one repeats.
    URLs in `inaccessible` fail the HEAD probe with 404.
    """

    def __init__(self, answers=("A bird is detected and visible.",), inaccessible=()):
        self.answers = list(answers)
        self.inaccessible = set(inaccessible)
        self.posts: list[httpx.Request] = []
        self.heads: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "HEAD":
            self.heads.append(request)
            if str(request.url) in self.inaccessible:
                return httpx.Response(404)
            return httpx.Response(200)

        self.posts.append(request)
        index = min(len(self.posts) - 1, len(self.answers) - 1)
        answer = self.answers[index]
        if isinstance(answer, httpx.Response):
            return answer
        return chat_response(answer)

    def post_bodies(self) -> list[dict]:
        return [json.loads(request.content) for request in self.posts]


@pytest.fixture
def config() -> InferenceConfig:
    return InferenceConfig(api_key="test-key", api_url=API_URL, timeout=5.0)


@pytest.fixture
def run_with_endpoint(config):
    """Run `fn(client)` against a mocked endpoint and return its result."""

    def _run(handler, fn):
        async def _main():
            transport = httpx.MockTransport(handler)
            async with httpx.AsyncClient(transport=transport) as http:
                client = InferenceClient(config, http=http)
                return await fn(client)

        return asyncio.run(_main())

    return _run


def make_attempt(
    attempt_number: int,
    detected: bool,
    description: str = "",
    total_ms: int = 100,
    error_message: str | None = None,
    confidence: float = 0.6,
) -> AttemptResult:
    return AttemptResult(
        detected=detected,
        description=description or ("Bird detected" if detected else "No bird"),
        confidence_score=confidence,
        timings=Timings(total_ms=total_ms),
        error_message=error_message,
        attempt_number=attempt_number,
    )
