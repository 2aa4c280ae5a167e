"""Single strategy: one inference attempt per input.

Fast and cheap, but a single answer carries the full variance of the model.

Usage:
    uv run python -m vision_detect.strategies.single "https://example.com/clip.mp4"
"""

from .single import run_single

__all__ = ["run_single"]
