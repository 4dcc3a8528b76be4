"""Boundary validation for story model output.

Models frequently wrap JSON in markdown fences or drift from the requested
keys. `parse_story_response` turns raw text into either a `ParsedStory` or a
`StoryParseError`; it never substitutes placeholder content.
"""

import json
import re
from dataclasses import dataclass

from bedtime.services.exceptions import StoryParseError

_FENCE_PATTERN = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?\s*```$", re.DOTALL)

MIN_TITLE_LENGTH = 3
MIN_TEXT_LENGTH = 10

_TITLE_KEYS = ("title", "bookTitle")
_TEXT_KEYS = ("page1Text", "storyText")
_PROMPT_KEYS = ("illustrationPrompt",)


@dataclass(frozen=True)
class ParsedStory:
    title: str
    page1_text: str
    illustration_prompt: str | None = None


def strip_code_fences(raw: str) -> str:
    """Remove a surrounding ```json ... ``` fence if present."""
    text = raw.strip()
    match = _FENCE_PATTERN.match(text)
    if match:
        return match.group(1).strip()
    return text


def _first_string(payload: dict, keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def parse_story_response(raw: str) -> ParsedStory | StoryParseError:
    """Parse the story model's response.

    Args:
        raw: Raw content returned by the text generation capability

    Returns:
        ParsedStory on success, StoryParseError describing the problem otherwise
    """
    cleaned = strip_code_fences(raw or "")
    if not cleaned:
        return StoryParseError("Story response was empty", raw_response=raw or "")

    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        return StoryParseError(f"Story response is not valid JSON: {e.msg}", raw_response=raw)

    if not isinstance(payload, dict):
        return StoryParseError("Story response JSON is not an object", raw_response=raw)

    title = _first_string(payload, _TITLE_KEYS)
    if title is None or len(title) < MIN_TITLE_LENGTH:
        return StoryParseError("Story response is missing a title", raw_response=raw)

    page1_text = _first_string(payload, _TEXT_KEYS)
    if page1_text is None or len(page1_text) < MIN_TEXT_LENGTH:
        return StoryParseError("Story response is missing page 1 text", raw_response=raw)

    return ParsedStory(
        title=title,
        page1_text=page1_text,
        illustration_prompt=_first_string(payload, _PROMPT_KEYS),
    )
