"""Generative content client for quizzes and achievement proposals."""

import json
import re
from typing import Any, List, Optional

import httpx
from pydantic import ValidationError
import structlog

from app.core.errors import GenerationUnavailableError
from app.models.gamification import AchievementCategory
from app.schemas.challenge import QuizQuestion
from app.schemas.gamification import AchievementCreate

logger = structlog.get_logger()

JSON_ARRAY = re.compile(r"\[[\s\S]*\]")

QUIZ_PROMPT = """Generate a quiz with {count} multiple-choice questions about "{topic}".
Format the response as a JSON array with objects containing:
1. question (the question text)
2. options (array of 4 possible answers)
3. correct_answer (the correct answer, which must be one of the options)
4. points (number between 5-15 based on difficulty)

Make the questions engaging, educational, and varied in difficulty."""

ACHIEVEMENT_PROMPT = """Generate {count} achievement badges for an event called "{event_name}" with description "{event_description}".
The achievements should be for the category: {category} (one of: networking, attendance, engagement, feedback, social).
Format the response as a JSON array with objects containing:
1. name (short, catchy title)
2. description (1-2 sentences explaining how to earn it)
3. points (number between 10-50)
4. criteria (short technical description of how this is earned)"""


def extract_json_array(text: str) -> List[Any]:
    """Pull the first JSON array out of free-form model output."""
    match = JSON_ARRAY.search(text or "")
    if not match:
        raise GenerationUnavailableError("Generated content was not in the expected format")
    try:
        items = json.loads(match.group(0))
    except json.JSONDecodeError:
        raise GenerationUnavailableError("Generated content was not valid JSON")
    if not isinstance(items, list):
        raise GenerationUnavailableError("Generated content was not a list")
    return items


class GeminiContentGenerator:
    """Calls the Gemini generateContent REST endpoint.

    Built once at startup and handed to request handlers; every failure
    (missing key, timeout, HTTP error, malformed output) surfaces as
    GenerationUnavailableError.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        base_url: str,
        timeout: float = 30.0,
        max_items: int = 20,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_items = max_items
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._owns_client = client is None

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def generate_quiz(self, topic: str, question_count: int = 5) -> List[QuizQuestion]:
        prompt = self.quiz_prompt(topic, question_count)
        items = await self._generate_list(prompt)

        try:
            questions = [QuizQuestion.model_validate(item) for item in items[:self.max_items]]
        except ValidationError as e:
            logger.warning("Generated quiz failed validation", topic=topic, error=str(e))
            raise GenerationUnavailableError("Generated quiz was malformed")

        if not questions:
            raise GenerationUnavailableError("Generated quiz had no questions")
        return questions

    async def generate_achievements(
        self,
        event_name: str,
        category: AchievementCategory,
        event_description: Optional[str] = None,
        count: int = 3
    ) -> List[AchievementCreate]:
        prompt = ACHIEVEMENT_PROMPT.format(
            count=count,
            event_name=event_name,
            event_description=event_description or "A campus event",
            category=category.value
        )
        items = await self._generate_list(prompt)

        proposals = []
        for item in items[:self.max_items]:
            if not isinstance(item, dict):
                raise GenerationUnavailableError("Generated achievements were malformed")
            try:
                proposals.append(AchievementCreate.model_validate({**item, "category": category.value}))
            except ValidationError as e:
                logger.warning("Generated achievement failed validation", error=str(e))
                raise GenerationUnavailableError("Generated achievements were malformed")
        return proposals

    def quiz_prompt(self, topic: str, question_count: int) -> str:
        return QUIZ_PROMPT.format(count=question_count, topic=topic)

    async def _generate_list(self, prompt: str) -> List[Any]:
        text = await self._generate_text(prompt)
        return extract_json_array(text)

    async def _generate_text(self, prompt: str) -> str:
        if not self.enabled:
            raise GenerationUnavailableError("Content generation is not configured")

        url = f"{self.base_url}/models/{self.model}:generateContent"
        body = {"contents": [{"parts": [{"text": prompt}]}]}

        try:
            response = await self._client.post(url, params={"key": self.api_key}, json=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException:
            logger.warning("Content generation timed out", model=self.model)
            raise GenerationUnavailableError("Content generation timed out")
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Content generation failed", model=self.model, error=str(e))
            raise GenerationUnavailableError("Content generation failed")

        try:
            parts = payload["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            logger.error("Unexpected generation response", model=self.model)
            raise GenerationUnavailableError("Content generation returned no content")

        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))
