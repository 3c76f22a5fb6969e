"""Base agent class with common LLM and prompt utilities."""

import json
import logging
from typing import Any, Optional

from config.settings import Settings
from tools.agent_sdk_client import AgentSDKClient

logger = logging.getLogger(__name__)


class BaseAgent:
    """Base class for all agents in the pipeline."""

    def __init__(
        self,
        llm_client: Optional[AgentSDKClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or Settings()
        self.llm = llm_client or AgentSDKClient(self.settings)

    @staticmethod
    def _format_characters(characters_json: Optional[str]) -> str:
        """Render the book's character list (JSON array) as prompt lines."""
        if not characters_json:
            return "(none specified)"
        try:
            characters = json.loads(characters_json)
        except json.JSONDecodeError:
            logger.warning("Book characters field is not valid JSON, using raw text")
            return characters_json
        lines = []
        for c in characters if isinstance(characters, list) else []:
            if isinstance(c, dict) and c.get("name"):
                desc = c.get("description", "")
                lines.append(f"- {c['name']}: {desc}" if desc else f"- {c['name']}")
        return "\n".join(lines) or "(none specified)"

    @staticmethod
    def _dump(value: Any) -> str:
        return json.dumps(value, ensure_ascii=False, indent=2)
