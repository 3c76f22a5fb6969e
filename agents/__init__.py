"""Agents package — prompt-owning agents and the GenerationClient facade."""

from agents.base_agent import BaseAgent
from agents.planner_agent import PlannerAgent
from agents.writer_agent import ChapterRequest, WriterAgent
from agents.continuity_agent import CharacterStateUpdate, ContinuityAgent
from agents.editor_agent import EditorAgent
from agents.artist_agent import ArtistAgent
from agents.generation_client import GenerationClient

__all__ = [
    "BaseAgent",
    "PlannerAgent",
    "ChapterRequest",
    "WriterAgent",
    "CharacterStateUpdate",
    "ContinuityAgent",
    "EditorAgent",
    "ArtistAgent",
    "GenerationClient",
]
