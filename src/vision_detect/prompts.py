"""Prompt text for object detection.

Keep prompts centralized so single and consensus analysis stay comparable.
"""

DETECTION_PROMPT_TEMPLATE = """\
You are analyzing a video to look for {name}s and describe what they're doing.

TASK:
1. First, determine if there are any {name}s visible in this video
2. If found, describe what the {name}s are doing throughout the video

DETECTION CRITERIA for {name}s:
- Look for the characteristic shape and features of {name}s
- Consider size, posture, and context across the video timeline
- Be accurate but not overly strict

DESCRIPTION FOCUS (if detected):
- Activities throughout the video (movement patterns, behaviors)
- Interactions with environment and other objects/animals
- Location and positioning in the frame
- Any notable actions or characteristics visible
- Timeline of activities if multiple behaviors observed

OUTPUT FORMAT (JSON ONLY):
If {name}s detected:
{{
  "detected": true,
  "description": "Detailed description of what the {name}s are doing in the video, including timeline and behaviors"
}}

If no {name}s detected:
{{
  "detected": false,
  "description": "No {name}s detected in this video."
}}
"""


def build_detection_prompt(object_name: str) -> str:
    """Render the detection prompt for one object name (e.g. "Bird")."""
    return DETECTION_PROMPT_TEMPLATE.format(name=object_name.strip().lower())
