"""Prompt building and progressive sanitising for illustration renders."""

import re
from typing import Optional

from models.continuity import ChapterSpec

# Retry level at which the scene is replaced by a character-free setting shot.
FALLBACK_SCENE_LEVEL = 3

SAFETY_OVERRIDE = (
    "SAFETY OVERRIDE: This is a retry after a content filter block. Generate a "
    "completely safe, family-friendly image. Avoid violence, dark themes and mature "
    "content. Focus on positive, peaceful imagery."
)

NO_TEXT_INSTRUCTION = (
    "Do not include any text, words, letters, numbers, signs or labels in the image."
)

_REPLACEMENTS = {
    "blood": "red liquid",
    "bloody": "stained",
    "bleeding": "injured",
    "gore": "mess",
    "gory": "intense",
    "kill": "confront",
    "killing": "confronting",
    "murder": "conflict",
    "murderer": "antagonist",
    "dead": "still",
    "death": "end",
    "dying": "fading",
    "knife": "object",
    "weapon": "tool",
    "gun": "device",
    "stab": "strike",
    "stabbing": "striking",
    "horror": "tension",
    "terrifying": "intense",
    "terrified": "startled",
    "scary": "mysterious",
    "creepy": "unusual",
    "violent": "dramatic",
    "violence": "conflict",
    "attack": "approach",
    "attacking": "approaching",
    "corpse": "figure",
    "body": "form",
    "victim": "person",
    "scream": "expression",
    "screaming": "calling out",
    "dark": "dim",
    "darkness": "shadows",
    "sinister": "mysterious",
    "fear": "concern",
    "afraid": "worried",
    "panic": "urgency",
    "terror": "suspense",
}

_REPLACEMENT_RE = re.compile(
    r"\b(" + "|".join(sorted(_REPLACEMENTS, key=len, reverse=True)) + r")\b",
    re.IGNORECASE,
)


def build_illustration_prompt(
    spec: ChapterSpec, book_title: str, art_style: str = "",
) -> str:
    """First-attempt prompt for the illustration of one outline position."""
    parts = [f'Illustration for "{spec.title or f"Chapter {spec.number}"}" from the book "{book_title}".']
    if spec.summary:
        parts.append(f"Scene: {spec.summary}")
    if art_style:
        parts.append(f"Art style: {art_style}.")
    parts.append(NO_TEXT_INSTRUCTION)
    return "\n".join(parts)


def sanitize_scene_for_retry(scene: str, retry_level: int) -> str:
    """Soften a scene description that tripped the image model's filter.

    Level 1 swaps sensitive words for milder ones. Level 2 also reframes the
    prompt around atmosphere instead of action.
    """
    sanitized = scene
    if retry_level >= 1:
        sanitized = _REPLACEMENT_RE.sub(lambda m: _REPLACEMENTS[m.group(1).lower()], sanitized)
    if retry_level >= 2:
        sanitized = (
            f"A peaceful atmospheric scene: {sanitized[:200]}. Focus on the environment, "
            "lighting, and mood rather than specific actions or characters."
        )
    return sanitized


def fallback_scene(chapter_title: str, book_title: str, setting: Optional[str] = None) -> str:
    """Character-free setting shot used once sanitising has not helped."""
    setting = setting or "a peaceful environment"
    return (
        f'A beautiful, peaceful illustration for a book chapter titled "{chapter_title}" '
        f'from "{book_title}".\n'
        f"Show an atmospheric scene with: {setting}.\n"
        "Focus on the environment: natural lighting, interesting composition, inviting "
        "atmosphere.\nNo people or characters, just the setting and mood. Professional "
        "book illustration quality."
    )


def build_retry_prompt(
    base_prompt: str,
    retry_level: int,
    chapter_title: str,
    book_title: str,
    setting: Optional[str] = None,
) -> str:
    """Prompt for a retry at ``retry_level`` (the row's retry_count so far)."""
    if retry_level >= FALLBACK_SCENE_LEVEL:
        prompt = fallback_scene(chapter_title, book_title, setting)
    else:
        prompt = sanitize_scene_for_retry(base_prompt, retry_level)
    return f"{prompt}\n\n{SAFETY_OVERRIDE}"
