# moderation.py
# Optional content moderation. Fails open: if the moderation service is
# unreachable or errors, the text is treated as not flagged.

import logging
from typing import Any

from openai import AsyncOpenAI
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

MODERATION_MODEL = "omni-moderation-latest"


class ModerationResult(BaseModel):
    flagged: bool = False
    categories: dict[str, Any] = Field(default_factory=dict)
    category_scores: dict[str, Any] = Field(default_factory=dict)


class Moderator:
    def __init__(self, api_key: str | None = None, client: Any = None) -> None:
        self._client = client if client is not None else AsyncOpenAI(api_key=api_key)

    async def moderate(self, text: str) -> ModerationResult:
        try:
            response = await self._client.moderations.create(model=MODERATION_MODEL, input=text)
            result = response.results[0]
            return ModerationResult(
                flagged=result.flagged,
                categories=result.categories.model_dump(),
                category_scores=result.category_scores.model_dump(),
            )
        except Exception as exc:
            logger.error("Moderation API error, allowing content: %s", exc)
            return ModerationResult()
