import asyncio
import json
import logging
from typing import List, Optional

import httpx
from pydantic import BaseModel, Field

from app.core.config import settings
from app.services.analytics_service import AnalyticsService

logger = logging.getLogger(__name__)

PLACEHOLDER_API_KEYS = {'', 'your_openai_key_here', 'your-openai-api-key', 'changeme'}

SYSTEM_PROMPT = """You are Mr Alex, an AI teacher who explains things patiently and clearly.

CONTEXT:
- Level: {grade_level}
- Subject: {subject}
- Type: {question_type}

TASK:
1. Give a clear explanation adapted to the student's level
2. Break it down into 2-4 logical steps
3. Write a short quiz (2-3 questions) that checks understanding
4. Keep the vocabulary appropriate for the level and stay encouraging

RESPONSE FORMAT (strict JSON):
{{
  "answer": "Main explanation",
  "steps": [{{"title": "Step title", "content": "Step details", "order": 1}}],
  "quiz": [{{"question": "Check question", "options": ["A", "B", "C", "D"], "correct_answer": 0}}]
}}

Reply with valid JSON only, no markdown."""


class Step(BaseModel):
    title: str
    content: str
    order: int = 0


class QuizItem(BaseModel):
    question: str
    options: List[str] = Field(min_length=4, max_length=4)
    correct_answer: int = Field(ge=0, le=3)


class AnswerPayload(BaseModel):
    """Shape the model is asked to return"""
    answer: str = Field(min_length=1)
    steps: List[Step]
    quiz: List[QuizItem]


class GeneratedAnswer(AnswerPayload):
    used_fallback: bool = False
    fallback_reason: Optional[str] = None


class AnswerGenerator:
    """
    Produces an explanation, steps and a quiz for a student question.

    Uses the OpenAI chat-completions API when a key is configured and falls
    back to a fixed pedagogical template otherwise, or whenever the remote
    call fails. ``generate`` never raises.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        analytics: Optional[AnalyticsService] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.client = client
        self.analytics = analytics or AnalyticsService()
        self.api_key = settings.openai_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.openai_base_url).rstrip('/')
        self.model = model or settings.openai_model
        self.timeout_seconds = timeout_seconds or settings.generation_timeout_seconds
        self.logger = logging.getLogger(__name__)

    @property
    def configured(self) -> bool:
        return bool(self.api_key) and self.api_key.strip() not in PLACEHOLDER_API_KEYS

    async def generate(
        self,
        question_text: str,
        subject: str,
        grade_level: str,
        question_type: str = 'explanation'
    ) -> GeneratedAnswer:
        self.logger.info(f"generate: Entry - subject: {subject}, level: {grade_level}, type: {question_type}")

        if not self.configured:
            return self._fallback(question_text, subject, grade_level, 'not_configured')

        try:
            payload = await asyncio.wait_for(
                self._generate_remote(question_text, subject, grade_level, question_type),
                timeout=self.timeout_seconds
            )
            self.logger.info(f"generate: Success - steps: {len(payload.steps)}, quiz: {len(payload.quiz)}")
            return GeneratedAnswer(**payload.model_dump())
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            return self._fallback(question_text, subject, grade_level, 'timeout', e)
        except httpx.HTTPError as e:
            return self._fallback(question_text, subject, grade_level, 'http_error', e)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            # json and pydantic validation errors are ValueErrors
            return self._fallback(question_text, subject, grade_level, 'invalid_response', e)
        except Exception as e:
            return self._fallback(question_text, subject, grade_level, 'unexpected_error', e)

    async def _generate_remote(
        self,
        question_text: str,
        subject: str,
        grade_level: str,
        question_type: str
    ) -> AnswerPayload:
        request_body = {
            'model': self.model,
            'messages': [
                {
                    'role': 'system',
                    'content': SYSTEM_PROMPT.format(
                        grade_level=grade_level, subject=subject, question_type=question_type
                    ),
                },
                {
                    'role': 'user',
                    'content': f"Student question: {question_text}\n\nWrite a complete answer with steps and a quiz.",
                },
            ],
            'temperature': 0.7,
            'max_tokens': 1500,
            'response_format': {'type': 'json_object'},
        }
        headers = {'Authorization': f'Bearer {self.api_key}'}
        url = f"{self.base_url}/chat/completions"

        if self.client is not None:
            response = await self.client.post(url, json=request_body, headers=headers)
        else:
            async with httpx.AsyncClient(follow_redirects=False) as client:
                response = await client.post(url, json=request_body, headers=headers)
        response.raise_for_status()

        content = response.json()['choices'][0]['message']['content']
        if not content:
            raise ValueError("Empty completion content")

        payload = AnswerPayload.model_validate(json.loads(content))
        for index, step in enumerate(payload.steps, start=1):
            if not step.order:
                step.order = index
        return payload

    def _fallback(
        self,
        question_text: str,
        subject: str,
        grade_level: str,
        reason: str,
        error: Optional[Exception] = None
    ) -> GeneratedAnswer:
        if reason == 'not_configured':
            self.logger.info("generate: Fallback - OpenAI not configured")
        else:
            self.logger.warning(f"generate: Fallback - reason: {reason}, error: {error!r}")

        self.analytics.log_event(
            event_name='answer_generation_fallback',
            parameters={'reason': reason, 'subject': subject, 'grade_level': grade_level}
        )
        answer = build_fallback_answer(question_text, subject, grade_level)
        answer.fallback_reason = reason
        return answer


def build_fallback_answer(question_text: str, subject: str, grade_level: str) -> GeneratedAnswer:
    """Template answer; identical output for identical inputs."""
    return GeneratedAnswer(
        answer=(
            f"Hello! I'm Mr Alex, your AI study assistant.\n\n"
            f"For your question \"{question_text}\" in {subject} (level {grade_level}), "
            f"here is an approach we can work through together.\n\n"
            f"This answer was produced in offline mode. Once the AI service is available "
            f"you will get explanations tailored to your level."
        ),
        steps=[
            Step(
                title="Understand the question",
                content=f"Start by pinning down exactly what is being asked in {subject} and which key ideas are involved.",
                order=1,
            ),
            Step(
                title="Core concepts",
                content=f"Review the basic principles that will help you master this topic at the {grade_level} level.",
                order=2,
            ),
            Step(
                title="Put it into practice",
                content="Now apply what you have learned to a concrete example.",
                order=3,
            ),
        ],
        quiz=[
            QuizItem(
                question=f"What is the best way to learn {subject}?",
                options=[
                    "Memorise without understanding",
                    "Break it down step by step",
                    "Skip the hard parts",
                    "Only read summaries",
                ],
                correct_answer=1,
            ),
            QuizItem(
                question="How can Mr Alex help you with your studies?",
                options=[
                    "By giving only short answers",
                    "With detailed explanations and quizzes",
                    "By doing your homework for you",
                    "By avoiding complex topics",
                ],
                correct_answer=1,
            ),
        ],
        used_fallback=True,
    )
