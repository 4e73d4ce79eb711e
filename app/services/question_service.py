import json
import logging
import math
import time
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import String, cast, func, or_
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, ValidationError
from app.models.question import Question
from app.services.analytics_service import AnalyticsService
from app.services.generation_service import AnswerGenerator
from app.services.quota_service import QuotaService

logger = logging.getLogger(__name__)

QUESTION_TYPES = ['explanation', 'exercise', 'quiz']

SUBJECTS = [
    'Mathematics', 'Physics', 'Chemistry', 'Biology',
    'French', 'English', 'Spanish', 'German',
    'History', 'Geography', 'Philosophy', 'Economics',
    'Computer Science', 'Literature', 'Word', 'Excel',
    'TSSR', 'DWWM', 'CDA', 'BTS SIO',
]

GRADE_LEVELS = [
    'CE1', '6ème', '4ème', 'Terminale',
    'BTS SIO', 'TSSR', 'DWWM', 'CDA',
    'Licence', 'Master', 'Reconversion',
]

TAG_KEYWORDS = [
    'equation', 'formula', 'theorem', 'definition', 'concept', 'example',
    'problem', 'solution', 'method', 'principle', 'law', 'theory',
    'calculation', 'analysis', 'explanation', 'comparison', 'difference',
]

SORT_FIELDS = {
    'createdAt': Question.created_at,
    'updatedAt': Question.updated_at,
    'subject': Question.subject,
    'gradeLevel': Question.grade_level,
}

MAX_BULK_DELETE = 50


def extract_tags(question_text: str, subject: str) -> List[str]:
    """Subject plus every known keyword found in the text, first occurrence wins."""
    lower_text = question_text.lower()
    tags = [subject.lower()] + [keyword for keyword in TAG_KEYWORDS if keyword in lower_text]
    return list(dict.fromkeys(tags))


def normalize_tags(tags: List[str]) -> List[str]:
    cleaned = [tag.strip().lower() for tag in tags]
    return list(dict.fromkeys(tag for tag in cleaned if tag))


def serialize_question(question: Question) -> dict:
    return {
        'id': question.id,
        'questionText': question.question_text,
        'aiResponse': question.ai_response,
        'steps': question.steps,
        'quiz': question.quiz,
        'subject': question.subject,
        'gradeLevel': question.grade_level,
        'questionType': question.question_type,
        'isBookmarked': question.is_bookmarked,
        'tags': question.tags or [],
        'usedFallback': question.used_fallback,
        'responseTimeMs': question.response_time_ms,
        'tokensUsed': question.tokens_used,
        'createdAt': question.created_at.isoformat() if question.created_at else None,
        'updatedAt': question.updated_at.isoformat() if question.updated_at else None,
    }


class QuestionService:
    def __init__(
        self,
        analytics: Optional[AnalyticsService] = None,
        quota_service: Optional[QuotaService] = None,
        generator: Optional[AnswerGenerator] = None,
    ):
        self.analytics = analytics or AnalyticsService()
        self.quota_service = quota_service or QuotaService(analytics=self.analytics)
        self.generator = generator or AnswerGenerator(analytics=self.analytics)
        self.logger = logging.getLogger(__name__)

    async def create_question(
        self,
        db: Session,
        user_id: str,
        subject: str,
        grade_level: str,
        question_text: str,
        question_type: Optional[str] = None
    ) -> dict:
        """
        Answer a student question and record it against the daily quota.

        Order matters: the quota is checked before any generation work, the
        question is persisted before the quota is incremented, and a failed
        save never consumes quota. QuotaExceededError propagates unchanged.
        """
        question_type = question_type or 'explanation'
        self.logger.info(f"create_question: Entry - user: {user_id}, subject: {subject}, type: {question_type}")
        started = time.monotonic()

        reserved = self.quota_service.check_and_reserve(db, user_id)
        quota_date = reserved.quota_date

        generated = await self.generator.generate(question_text, subject, grade_level, question_type)
        response_time_ms = int((time.monotonic() - started) * 1000)
        steps = [step.model_dump() for step in generated.steps]
        quiz = [item.model_dump() for item in generated.quiz]

        try:
            question = Question(
                id=str(uuid.uuid4()),
                user_id=user_id,
                subject=subject,
                grade_level=grade_level,
                question_text=question_text,
                ai_response=generated.answer,
                steps={'steps': steps},
                quiz={'questions': quiz},
                question_type=question_type,
                tags=extract_tags(question_text, subject),
                tokens_used=len(generated.answer) + len(json.dumps(steps)),
                response_time_ms=response_time_ms,
                used_fallback=generated.used_fallback,
            )
            db.add(question)
            db.commit()
            db.refresh(question)
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(
                action='create_question',
                error=str(e),
                user_id=user_id,
                parameters={'subject': subject, 'stage': 'persist'}
            )
            self.logger.error(f"create_question: Failure - {e}")
            raise

        result = serialize_question(question)

        # The question is already saved; an increment failure surfaces to the
        # caller but leaves it in place.
        self.quota_service.increment(db, user_id, quota_date)
        quota = self.quota_service.status(db, user_id)

        self.analytics.log_success(
            action='create_question',
            user_id=user_id,
            parameters={
                'subject': subject,
                'question_type': question_type,
                'used_fallback': generated.used_fallback,
                'response_time_ms': response_time_ms,
            }
        )
        self.logger.info(f"create_question: Success - user: {user_id}, question: {question.id}, quota: {quota['used']}/{quota['limit']}")
        return {'question': result, 'quota': quota}

    def list_questions(
        self,
        db: Session,
        user_id: str,
        page: int = 1,
        limit: int = 20,
        subject: Optional[str] = None,
        grade_level: Optional[str] = None,
        question_type: Optional[str] = None,
        is_bookmarked: Optional[bool] = None,
        search: Optional[str] = None,
        sort_by: str = 'createdAt',
        sort_order: str = 'desc'
    ) -> dict:
        """Paginated question history with optional filters"""
        self.logger.info(f"list_questions: Entry - user: {user_id}, page: {page}, limit: {limit}")

        try:
            query = db.query(Question).filter(Question.user_id == user_id)
            if subject:
                query = query.filter(Question.subject == subject)
            if grade_level:
                query = query.filter(Question.grade_level == grade_level)
            if question_type:
                query = query.filter(Question.question_type == question_type)
            if is_bookmarked is not None:
                query = query.filter(Question.is_bookmarked == is_bookmarked)
            if search:
                pattern = f"%{search.lower()}%"
                query = query.filter(or_(
                    func.lower(Question.question_text).like(pattern),
                    func.lower(Question.ai_response).like(pattern),
                    func.lower(cast(Question.tags, String)).like(pattern),
                ))

            total = query.count()
            column = SORT_FIELDS.get(sort_by, Question.created_at)
            order = column.asc() if sort_order == 'asc' else column.desc()
            questions = query.order_by(order).offset((page - 1) * limit).limit(limit).all()

            self.logger.info(f"list_questions: Success - user: {user_id}, total: {total}")
            return {
                'questions': [serialize_question(q) for q in questions],
                'pagination': {
                    'page': page,
                    'limit': limit,
                    'total': total,
                    'pages': math.ceil(total / limit) if limit else 0,
                },
            }
        except Exception as e:
            self.analytics.log_failure(
                action='list_questions',
                error=str(e),
                user_id=user_id
            )
            self.logger.error(f"list_questions: Failure - {e}")
            raise

    def get_question(self, db: Session, question_id: str, user_id: str) -> Question:
        question = db.query(Question).filter(
            Question.id == question_id,
            Question.user_id == user_id
        ).first()
        if not question:
            raise NotFoundError("Question not found", code="QUESTION_NOT_FOUND")
        return question

    def toggle_bookmark(self, db: Session, question_id: str, user_id: str) -> Question:
        self.logger.info(f"toggle_bookmark: Entry - user: {user_id}, question: {question_id}")

        try:
            question = self.get_question(db, question_id, user_id)
            question.is_bookmarked = not question.is_bookmarked
            db.commit()
            db.refresh(question)

            self.logger.info(f"toggle_bookmark: Success - question: {question_id}, bookmarked: {question.is_bookmarked}")
            return question
        except Exception as e:
            db.rollback()
            self.logger.error(f"toggle_bookmark: Failure - {e}")
            raise

    def update_tags(self, db: Session, question_id: str, user_id: str, tags: List[str]) -> Question:
        self.logger.info(f"update_tags: Entry - user: {user_id}, question: {question_id}")

        try:
            question = self.get_question(db, question_id, user_id)
            question.tags = normalize_tags(tags)
            db.commit()
            db.refresh(question)

            self.logger.info(f"update_tags: Success - question: {question_id}, tags: {question.tags}")
            return question
        except Exception as e:
            db.rollback()
            self.logger.error(f"update_tags: Failure - {e}")
            raise

    def delete_question(self, db: Session, question_id: str, user_id: str):
        """Delete a question. Quota already spent on it is not refunded."""
        self.logger.info(f"delete_question: Entry - user: {user_id}, question: {question_id}")

        try:
            question = self.get_question(db, question_id, user_id)
            db.delete(question)
            db.commit()

            self.analytics.log_success(
                action='delete_question',
                user_id=user_id,
                parameters={'question_id': question_id}
            )
            self.logger.info(f"delete_question: Success - question: {question_id}")
        except Exception as e:
            db.rollback()
            self.logger.error(f"delete_question: Failure - {e}")
            raise

    def bulk_delete(self, db: Session, user_id: str, question_ids: List[str]) -> dict:
        self.logger.info(f"bulk_delete: Entry - user: {user_id}, count: {len(question_ids)}")

        if not question_ids:
            raise ValidationError("questionIds must be a non-empty array")
        if len(question_ids) > MAX_BULK_DELETE:
            raise ValidationError(f"At most {MAX_BULK_DELETE} questions can be deleted at once")

        deleted_count = 0
        errors = []
        for question_id in question_ids:
            try:
                self.delete_question(db, question_id, user_id)
                deleted_count += 1
            except NotFoundError as e:
                errors.append(f"Failed to delete question {question_id}: {e.message}")

        result = {'deletedCount': deleted_count, 'totalRequested': len(question_ids)}
        if errors:
            result['errors'] = errors

        self.logger.info(f"bulk_delete: Success - user: {user_id}, deleted: {deleted_count}/{len(question_ids)}")
        return result

    def get_stats(self, db: Session, user_id: str, now: Optional[datetime] = None) -> dict:
        self.logger.info(f"get_stats: Entry - user: {user_id}")

        try:
            now = now or datetime.utcnow()
            base = db.query(Question).filter(Question.user_id == user_id)

            by_subject = db.query(Question.subject, func.count(Question.id)).filter(
                Question.user_id == user_id
            ).group_by(Question.subject).all()
            by_type = db.query(Question.question_type, func.count(Question.id)).filter(
                Question.user_id == user_id
            ).group_by(Question.question_type).all()
            avg_response = db.query(func.avg(Question.response_time_ms)).filter(
                Question.user_id == user_id
            ).scalar()

            stats = {
                'total': base.count(),
                'thisWeek': base.filter(Question.created_at >= now - timedelta(days=7)).count(),
                'thisMonth': base.filter(Question.created_at >= now - timedelta(days=30)).count(),
                'bookmarked': base.filter(Question.is_bookmarked == True).count(),
                'fallbackAnswers': base.filter(Question.used_fallback == True).count(),
                'bySubject': {subject: count for subject, count in by_subject},
                'byType': {question_type: count for question_type, count in by_type},
                'avgResponseTime': round(float(avg_response), 1) if avg_response is not None else 0,
            }

            self.logger.info(f"get_stats: Success - user: {user_id}, total: {stats['total']}")
            return stats
        except Exception as e:
            self.analytics.log_failure(
                action='get_question_stats',
                error=str(e),
                user_id=user_id
            )
            self.logger.error(f"get_stats: Failure - {e}")
            raise

    @staticmethod
    def available_subjects() -> dict:
        return {
            'subjects': sorted(SUBJECTS),
            'gradeLevels': list(GRADE_LEVELS),
            'questionTypes': list(QUESTION_TYPES),
        }
