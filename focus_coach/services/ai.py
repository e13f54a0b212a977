"""Content suggestions backed by the OpenAI chat API.

Everything here is best effort. Apart from :meth:`AIService.analyze_brain_dump`
each call returns a static fallback when the service is unconfigured or fails.
"""
from __future__ import annotations

import json
import logging
import random
from typing import Any, List, Optional

from openai import AsyncOpenAI
from pydantic import ValidationError
from sqlmodel import Field, SQLModel

from focus_coach.core.settings import AI, AISettings
from focus_coach.datetime_utils import today_iso
from focus_coach.errors import AIServiceError
from focus_coach.models.user import DailyQuote


logger = logging.getLogger(__name__)

FALLBACK_FOCUS = [
    "Focus on the most urgent deadline today",
    "Work on the task that moves your biggest goal forward",
    "Complete the task you've been avoiding",
    "Tackle the most important item from your list",
]

FALLBACK_SUBTASKS = [
    "Clarify what done looks like",
    "Gather what you need to start",
    "Do the smallest first step",
    "Work through the main part",
    "Review and wrap up",
]

FALLBACK_QUOTES = {
    "motivated": DailyQuote(
        quote="The secret of getting ahead is getting started.", author="Mark Twain"
    ),
    "calm": DailyQuote(
        quote="Nature does not hurry, yet everything is accomplished.", author="Lao Tzu"
    ),
    "focused": DailyQuote(
        quote="Concentrate all your thoughts upon the work at hand.",
        author="Alexander Graham Bell",
    ),
    "tired": DailyQuote(
        quote="It does not matter how slowly you go as long as you do not stop.",
        author="Confucius",
    ),
}
DEFAULT_QUOTE = DailyQuote(
    quote="Well done is better than well said.", author="Benjamin Franklin"
)


class Theme(SQLModel):
    name: str
    tasks: List[str] = Field(default_factory=list)


class FocusCandidate(SQLModel):
    text: str
    reason: Optional[str] = None
    score: float = 0.0


class BrainDumpAnalysis(SQLModel):
    themes: List[Theme] = Field(default_factory=list)
    candidates: List[FocusCandidate] = Field(default_factory=list)


def _strip_fences(content: str) -> str:
    text = content.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    return text.strip()


class AIService:
    def __init__(self, client: Any = None, settings: AISettings = AI) -> None:
        self.settings = settings
        self.client = client
        if self.client is None and settings.api_key:
            self.client = AsyncOpenAI(api_key=settings.api_key, timeout=settings.timeout_sec)
        if self.client is None:
            logger.info("AI suggestions disabled (no OPENAI_API_KEY)")

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def _complete(self, system: str, prompt: str, *, temperature: float = 0.7) -> str:
        if self.client is None:
            raise AIServiceError("AI service is not configured")
        response = await self.client.chat.completions.create(
            model=self.settings.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            max_tokens=self.settings.max_tokens,
            temperature=temperature,
        )
        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise AIServiceError("AI service returned an empty answer")
        return content.strip()

    async def synthesize_focus(self, text: str) -> str:
        """Turn a free-form brain dump into one prioritized statement."""

        if not text.strip():
            return random.choice(FALLBACK_FOCUS)
        try:
            return await self._complete(
                "You help people pick their single most important priority for today.",
                f"Brain dump:\n{text}\n\nReply with the one prioritized task only.",
            )
        except Exception as exc:
            logger.warning("Focus synthesis failed, using fallback: %s", exc)
            return random.choice(FALLBACK_FOCUS)

    async def analyze_brain_dump(self, text: str) -> BrainDumpAnalysis:
        """Group a brain dump into themes and rank focus candidates.

        Raises :class:`AIServiceError`; callers decide what to show instead.
        """

        if not text.strip():
            raise AIServiceError("Nothing to analyze")
        try:
            content = await self._complete(
                "You group tasks into themes and rank focus candidates. Answer in JSON only.",
                "Return an object with 'themes' (name, tasks) and 'candidates' "
                f"(text, reason, score from 0 to 1) for:\n{text}",
                temperature=0.5,
            )
        except AIServiceError:
            raise
        except Exception as exc:
            raise AIServiceError(f"Brain dump analysis failed: {exc}") from exc
        try:
            analysis = BrainDumpAnalysis.model_validate(json.loads(_strip_fences(content)))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise AIServiceError(f"Could not parse brain dump analysis: {exc}") from exc
        analysis.candidates.sort(key=lambda candidate: candidate.score, reverse=True)
        return analysis

    async def breakdown_focus(self, focus: str) -> List[str]:
        if not focus.strip():
            return list(FALLBACK_SUBTASKS)
        try:
            content = await self._complete(
                "You break a focus into small ordered steps. Answer with a JSON array of strings.",
                f"Focus: {focus}\nGive 3 to 7 subtasks that each take under two hours.",
                temperature=0.6,
            )
            steps = json.loads(_strip_fences(content))
        except Exception as exc:
            logger.warning("Subtask breakdown failed, using fallback: %s", exc)
            return list(FALLBACK_SUBTASKS)
        if not isinstance(steps, list):
            return list(FALLBACK_SUBTASKS)
        cleaned = [str(step).strip() for step in steps if str(step).strip()]
        return cleaned or list(FALLBACK_SUBTASKS)

    async def generate_quote(self, mood: Optional[str] = None) -> DailyQuote:
        fallback = FALLBACK_QUOTES.get((mood or "").lower(), DEFAULT_QUOTE)
        fallback = fallback.model_copy(update={"mood": mood, "date": today_iso()})
        try:
            content = await self._complete(
                "You pick short, real motivational quotes. Answer in JSON only.",
                f'Mood: {mood or "any"}. Return {{"quote": ..., "author": ...}}.',
                temperature=0.8,
            )
            data = json.loads(_strip_fences(content))
            return DailyQuote(
                quote=str(data["quote"]).strip(),
                author=str(data["author"]).strip(),
                date=today_iso(),
                mood=mood,
            )
        except Exception as exc:
            logger.warning("Quote generation failed, using fallback: %s", exc)
            return fallback


__all__ = [
    "AIService",
    "BrainDumpAnalysis",
    "DEFAULT_QUOTE",
    "FALLBACK_FOCUS",
    "FALLBACK_QUOTES",
    "FALLBACK_SUBTASKS",
    "FocusCandidate",
    "Theme",
]
