"""
Tests for the question workflow and history
"""

import asyncio
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import NotFoundError, QuotaExceededError, ValidationError
from app.models.question import Question
from app.services.generation_service import AnswerGenerator, build_fallback_answer
from app.services.question_service import (
    QuestionService,
    extract_tags,
    normalize_tags,
)
from app.services.quota_service import QuotaService
from app.services.subscription_service import SubscriptionResolver


@pytest.fixture
def quota_service(analytics, fixed_clock):
    return QuotaService(analytics=analytics, clock=fixed_clock)


@pytest.fixture
def service(analytics, quota_service):
    generator = AnswerGenerator(analytics=analytics, api_key="")
    return QuestionService(analytics=analytics, quota_service=quota_service, generator=generator)


@pytest.fixture
def add_question(db_session):
    """Insert history rows directly"""
    def _add(user_id, **overrides):
        values = {
            'id': str(uuid.uuid4()),
            'user_id': user_id,
            'subject': 'Mathematics',
            'grade_level': '6ème',
            'question_text': 'What is a fraction?',
            'ai_response': 'A fraction is part of a whole.',
            'steps': {'steps': []},
            'quiz': {'questions': []},
            'question_type': 'explanation',
            'tags': ['mathematics'],
            'response_time_ms': 100,
        }
        values.update(overrides)
        question = Question(**values)
        db_session.add(question)
        db_session.commit()
        return question
    return _add


class TestTags:

    def test_extract_tags_subject_first(self):
        assert extract_tags("Explain this theorem with an example", "Mathematics") == ['mathematics', 'theorem', 'example']

    def test_extract_tags_deduplicates(self):
        assert extract_tags("Give an example of an explanation", "Explanation") == ['explanation', 'example']

    def test_normalize_tags(self):
        assert normalize_tags([" Algebra", "algebra", "", "  ", "GEOMETRY"]) == ['algebra', 'geometry']


class TestCreateQuestion:
    """Ask-a-question workflow"""

    async def test_creates_question_and_counts_it(self, db_session, user, service):
        result = await service.create_question(
            db_session, user.id, 'Mathematics', '6ème', 'How do I add two fractions?'
        )

        question = result['question']
        assert question['questionType'] == 'explanation'
        assert question['usedFallback'] is True
        assert question['steps']['steps'][0]['order'] == 1
        assert len(question['quiz']['questions']) == 2
        assert question['tags'] == ['mathematics']
        assert result['quota'] == {'used': 1, 'limit': 20, 'remaining': 19, 'resetAt': '2026-03-11T00:00:00+00:00'}
        assert db_session.query(Question).count() == 1

    async def test_twenty_first_question_is_rejected(self, db_session, user, service, quota_service):
        quota = quota_service.get_or_create_today(db_session, user.id)
        quota.questions_used = 20
        db_session.commit()

        service.generator = MagicMock(spec=AnswerGenerator)
        service.generator.generate = AsyncMock()

        with pytest.raises(QuotaExceededError) as exc_info:
            await service.create_question(db_session, user.id, 'Physics', 'Terminale', 'What is inertia?')

        assert exc_info.value.limit == 20
        service.generator.generate.assert_not_called()
        assert db_session.query(Question).count() == 0
        assert quota_service.status(db_session, user.id)['used'] == 20

    async def test_steps_run_in_order(self, db_session, user, analytics):
        calls = []
        quota_service = MagicMock(spec=QuotaService)
        quota_service.check_and_reserve.side_effect = lambda db, uid: calls.append('check') or MagicMock(quota_date=date(2026, 3, 10))
        quota_service.increment.side_effect = lambda db, uid, d: calls.append(
            f"increment:{db.query(Question).count()}"
        ) or True
        quota_service.status.return_value = {'used': 1, 'limit': 20, 'remaining': 19, 'resetAt': 'x'}

        generator = MagicMock(spec=AnswerGenerator)

        async def generate(*args):
            calls.append('generate')
            return build_fallback_answer("q", "Biology", "CE1")

        generator.generate = generate
        service = QuestionService(analytics=analytics, quota_service=quota_service, generator=generator)

        await service.create_question(db_session, user.id, 'Biology', 'CE1', 'What is a cell?', 'quiz')

        # the question row exists by the time the quota is incremented
        assert calls == ['check', 'generate', 'increment:1']
        quota_service.increment.assert_called_once_with(db_session, user.id, date(2026, 3, 10))

    async def test_failed_save_does_not_consume_quota(self, db_session, user, service, quota_service, analytics):
        quota_service.get_or_create_today(db_session, user.id)

        with patch.object(db_session, 'commit', side_effect=SQLAlchemyError("disk full")):
            with pytest.raises(SQLAlchemyError):
                await service.create_question(db_session, user.id, 'History', '4ème', 'Who was Napoleon?')

        assert db_session.query(Question).count() == 0
        assert quota_service.status(db_session, user.id)['used'] == 0
        assert analytics.log_failure.call_args.kwargs['parameters']['stage'] == 'persist'

    async def test_uses_plan_limit(self, db_session, user, plans, subscribe, service):
        subscribe(user.id, 'premium')

        result = await service.create_question(db_session, user.id, 'English', 'Licence', 'Explain the present perfect')

        assert result['quota']['limit'] == 300
        assert result['quota']['remaining'] == 299

    def test_concurrent_questions_are_all_counted(self, session_factory, db_session, user, analytics, fixed_clock):
        user_id = user.id
        quota_service = QuotaService(analytics=analytics, resolver=SubscriptionResolver(default_limit=20), clock=fixed_clock)
        service = QuestionService(
            analytics=analytics,
            quota_service=quota_service,
            generator=AnswerGenerator(analytics=analytics, api_key=""),
        )

        def ask(index):
            session = session_factory()
            try:
                return asyncio.run(service.create_question(
                    session, user_id, 'Chemistry', 'Terminale', f"Question number {index}"
                ))
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=6) as pool:
            results = list(pool.map(ask, range(12)))

        assert len(results) == 12
        assert db_session.query(Question).count() == 12
        assert quota_service.status(db_session, user_id)['used'] == 12


class TestHistory:
    """Listing, bookmarks, tags and deletes"""

    def test_list_filters_and_paginates(self, db_session, user, make_user, service, add_question):
        other = make_user()
        for index in range(5):
            add_question(user.id, question_text=f"Fraction {index}", created_at=datetime(2026, 3, 1 + index))
        add_question(user.id, subject='Physics', question_text='What is a force?')
        add_question(other.id)

        page = service.list_questions(db_session, user.id, page=2, limit=2, subject='Mathematics')

        assert page['pagination'] == {'page': 2, 'limit': 2, 'total': 5, 'pages': 3}
        assert [q['questionText'] for q in page['questions']] == ['Fraction 2', 'Fraction 1']

    def test_list_search_matches_text_answer_and_tags(self, db_session, user, service, add_question):
        add_question(user.id, question_text='Prove the Pythagorean THEOREM')
        add_question(user.id, ai_response='Use the theorem of Thales')
        add_question(user.id, tags=['mathematics', 'theorem'])
        add_question(user.id, question_text='What is a verb?', subject='French', tags=['french'])

        page = service.list_questions(db_session, user.id, search='Theorem')

        assert page['pagination']['total'] == 3

    def test_list_sort_ascending(self, db_session, user, service, add_question):
        add_question(user.id, subject='Physics')
        add_question(user.id, subject='Biology')

        page = service.list_questions(db_session, user.id, sort_by='subject', sort_order='asc')

        assert [q['subject'] for q in page['questions']] == ['Biology', 'Physics']

    def test_other_users_question_is_not_found(self, db_session, user, make_user, service, add_question):
        foreign = add_question(make_user().id)

        with pytest.raises(NotFoundError):
            service.get_question(db_session, foreign.id, user.id)

    def test_toggle_bookmark_and_filter(self, db_session, user, service, add_question):
        question = add_question(user.id)

        assert service.toggle_bookmark(db_session, question.id, user.id).is_bookmarked is True
        assert service.list_questions(db_session, user.id, is_bookmarked=True)['pagination']['total'] == 1
        assert service.toggle_bookmark(db_session, question.id, user.id).is_bookmarked is False

    def test_update_tags(self, db_session, user, service, add_question):
        question = add_question(user.id)

        assert service.update_tags(db_session, question.id, user.id, ['Revision ', 'revision']).tags == ['revision']

    def test_delete_does_not_refund_quota(self, db_session, user, service, quota_service):
        created = asyncio.run(service.create_question(db_session, user.id, 'Mathematics', 'CE1', 'What is 2+2?'))

        service.delete_question(db_session, created['question']['id'], user.id)

        assert db_session.query(Question).count() == 0
        assert quota_service.status(db_session, user.id)['used'] == 1

    def test_bulk_delete_reports_missing(self, db_session, user, service, add_question):
        kept = [add_question(user.id).id for _ in range(2)]

        result = service.bulk_delete(db_session, user.id, kept + ['missing-id'])

        assert result['deletedCount'] == 2
        assert result['totalRequested'] == 3
        assert len(result['errors']) == 1

    @pytest.mark.parametrize("ids", [[], [f"id-{i}" for i in range(51)]])
    def test_bulk_delete_bounds(self, db_session, user, service, ids):
        with pytest.raises(ValidationError):
            service.bulk_delete(db_session, user.id, ids)


class TestQuestionStats:

    def test_stats(self, db_session, user, service, add_question):
        now = datetime(2026, 3, 10, 12, 0)
        add_question(user.id, created_at=now - timedelta(days=1), response_time_ms=100, is_bookmarked=True)
        add_question(user.id, created_at=now - timedelta(days=10), response_time_ms=200, used_fallback=True)
        add_question(user.id, subject='Physics', question_type='quiz', created_at=now - timedelta(days=40), response_time_ms=300)

        stats = service.get_stats(db_session, user.id, now=now)

        assert stats['total'] == 3
        assert stats['thisWeek'] == 1
        assert stats['thisMonth'] == 2
        assert stats['bookmarked'] == 1
        assert stats['fallbackAnswers'] == 1
        assert stats['bySubject'] == {'Mathematics': 2, 'Physics': 1}
        assert stats['byType'] == {'explanation': 2, 'quiz': 1}
        assert stats['avgResponseTime'] == 200.0

    def test_stats_empty(self, db_session, user, service):
        stats = service.get_stats(db_session, user.id)

        assert stats['total'] == 0
        assert stats['avgResponseTime'] == 0

    def test_available_subjects(self):
        options = QuestionService.available_subjects()

        assert options['questionTypes'] == ['explanation', 'exercise', 'quiz']
        assert 'Mathematics' in options['subjects']
