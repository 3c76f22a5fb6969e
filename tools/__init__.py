"""Tools package — Agent SDK and image clients, JSON parsing, retry, text utilities."""

from tools.agent_sdk_client import AgentSDKClient, classify_error
from tools.image_client import ImageClient
from tools.llm_client import parse_json, parse_json_response
from tools.media_store import MediaStore
from tools.retry import async_retry
from tools.text_utils import (
    count_words,
    format_chapter_heading,
    format_sequence_heading,
    strip_leading_heading,
    ensure_the_end,
    ensure_fade_out,
    split_into_paragraphs,
    get_chapter_ending,
    excerpt_summary,
    trim_story_so_far,
)
from tools.illustration_prompts import (
    build_illustration_prompt,
    build_retry_prompt,
    sanitize_scene_for_retry,
    fallback_scene,
)

__all__ = [
    "AgentSDKClient",
    "classify_error",
    "ImageClient",
    "parse_json",
    "parse_json_response",
    "MediaStore",
    "async_retry",
    "count_words",
    "format_chapter_heading",
    "format_sequence_heading",
    "strip_leading_heading",
    "ensure_the_end",
    "ensure_fade_out",
    "split_into_paragraphs",
    "get_chapter_ending",
    "excerpt_summary",
    "trim_story_so_far",
    "build_illustration_prompt",
    "build_retry_prompt",
    "sanitize_scene_for_retry",
    "fallback_scene",
]
