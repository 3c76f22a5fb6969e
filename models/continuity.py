"""Versioned schemas for the JSON blobs stored on a book.

``books.outline`` and ``books.character_states`` are TEXT columns holding
JSON. Both carry a ``schema_version``; blobs written before versioning (a bare
chapter list, or a bare name -> state map) are upgraded on load.
"""

import json
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from config.exceptions import ValidationError

OUTLINE_SCHEMA_VERSION = 1
CHARACTER_STATES_SCHEMA_VERSION = 1


class ChapterSpec(BaseModel):
    """One planned chapter."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    number: int
    title: str = ""
    summary: str = ""
    pov: Optional[str] = None
    target_words: int = Field(default=0, alias="targetWords")
    key_points: list[str] = Field(default_factory=list, alias="keyPoints")


class Outline(BaseModel):
    """Ordered chapter plan, written once per book."""

    schema_version: int = OUTLINE_SCHEMA_VERSION
    chapters: list[ChapterSpec] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.chapters)

    def spec_at(self, index: int) -> ChapterSpec:
        """Spec for the 0-based chapter index."""
        return self.chapters[index]

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: Optional[str]) -> "Outline":
        """Load a stored outline, upgrading legacy shapes.

        Raises:
            ValidationError: If the blob is missing or malformed.
        """
        if not raw:
            raise ValidationError("Book has no outline")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Stored outline is not valid JSON: {e}") from e
        if isinstance(data, list):
            data = {"chapters": data}
        if isinstance(data, dict) and "schema_version" not in data:
            data = {**data, "schema_version": OUTLINE_SCHEMA_VERSION}
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Stored outline does not match schema: {e}") from e


class CharacterState(BaseModel):
    """What the story currently knows about one character."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    last_seen_chapter: Optional[int] = Field(default=None, alias="last_seen")
    status: str = ""
    knowledge: list[str] = Field(default_factory=list, alias="knows")
    goal: str = ""


class CharacterStates(BaseModel):
    """Name -> state map threaded through every chapter call."""

    schema_version: int = CHARACTER_STATES_SCHEMA_VERSION
    characters: dict[str, CharacterState] = Field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.characters)

    def to_json(self) -> str:
        return self.model_dump_json()

    def to_prompt_dict(self) -> dict[str, dict[str, Any]]:
        """Plain dict with the short field names used in prompts."""
        return {
            name: state.model_dump(by_alias=True)
            for name, state in self.characters.items()
        }

    @classmethod
    def from_mapping(cls, data: Any) -> "CharacterStates":
        """Build from a parsed JSON value (stored blob or model output).

        Accepts the versioned shape ``{"schema_version": 1, "characters": {...}}``
        and the legacy bare ``{name: state}`` map.

        Raises:
            ValidationError: If the value cannot be read as character states.
        """
        if not isinstance(data, dict):
            raise ValidationError(
                "Character states must be a JSON object",
                {"type": type(data).__name__},
            )
        if "characters" in data and isinstance(data["characters"], dict):
            payload = {
                "schema_version": data.get("schema_version", CHARACTER_STATES_SCHEMA_VERSION),
                "characters": data["characters"],
            }
        else:
            payload = {
                "schema_version": CHARACTER_STATES_SCHEMA_VERSION,
                "characters": {k: v for k, v in data.items() if k != "schema_version"},
            }
        try:
            return cls.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(f"Character states do not match schema: {e}") from e

    @classmethod
    def from_json(cls, raw: Optional[str]) -> "CharacterStates":
        """Load a stored blob. Empty or missing means no characters tracked yet."""
        if not raw:
            return cls()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Stored character states are not valid JSON: {e}") from e
        return cls.from_mapping(data)
