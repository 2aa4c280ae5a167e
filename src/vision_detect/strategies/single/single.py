"""Single-pass detection - one model call.

Usage:
    from vision_detect.strategies.single import run_single
    result = await run_single(client, "https://drive.google.com/file/d/<id>/view", "Bird")
"""

import asyncio

from ...api import InferenceClient
from ...config import DEFAULT_MAX_TOKENS, DEFAULT_MODEL, load_config
from ...detection import AttemptResult, analyze
from ...prompts import build_detection_prompt
from ...urls import to_direct_url


async def run_single(
    client: InferenceClient,
    input_ref: str,
    object_name: str,
    model: str = DEFAULT_MODEL,
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> AttemptResult:
    """Run one detection attempt.

    Args:
        client: Inference client
        input_ref: Video URL; sharing links are converted to direct links
        object_name: Object to look for (e.g. "Bird")
        model: Model to use
        max_tokens: Answer token limit

    Returns:
        AttemptResult for attempt 1
    """
    return await analyze(
        client,
        to_direct_url(input_ref),
        build_detection_prompt(object_name),
        model,
        max_tokens,
    )


async def main():
    import argparse

    from ...report import format_attempt_report

    parser = argparse.ArgumentParser(description="Single-pass object detection")
    parser.add_argument("url", help="Video URL (sharing links are converted)")
    parser.add_argument("--object", default="Bird", help="Object to detect")
    parser.add_argument("-m", "--model", default=DEFAULT_MODEL, help="Model to use")
    parser.add_argument(
        "--max-tokens", type=int, default=DEFAULT_MAX_TOKENS, help="Answer token limit"
    )
    args = parser.parse_args()

    async with InferenceClient(load_config()) as client:
        result = await run_single(
            client, args.url, args.object, args.model, args.max_tokens
        )

    print(format_attempt_report(result, args.object, to_direct_url(args.url), args.model))


if __name__ == "__main__":
    asyncio.run(main())
