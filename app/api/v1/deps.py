from fastapi import Request
from app.services.analytics_service import AnalyticsService
from app.services.generation_service import AnswerGenerator
from app.services.question_service import QuestionService
from app.services.quota_service import QuotaService
from app.services.revision_service import RevisionService
from app.services.subscription_service import SubscriptionService
from app.services.user_service import UserService


def get_analytics(request: Request) -> AnalyticsService:
    """Analytics sink built at startup (see app.main lifespan)"""
    analytics = getattr(request.app.state, 'analytics', None)
    if analytics is None:
        analytics = AnalyticsService()
        request.app.state.analytics = analytics
    return analytics


def get_answer_generator(request: Request) -> AnswerGenerator:
    generator = getattr(request.app.state, 'answer_generator', None)
    if generator is None:
        generator = AnswerGenerator(analytics=get_analytics(request))
        request.app.state.answer_generator = generator
    return generator


def get_quota_service(request: Request) -> QuotaService:
    """Dependency to get quota service instance"""
    return QuotaService(analytics=get_analytics(request))


def get_subscription_service(request: Request) -> SubscriptionService:
    """Dependency to get subscription service instance"""
    return SubscriptionService(analytics=get_analytics(request))


def get_user_service(request: Request) -> UserService:
    return UserService(analytics=get_analytics(request))


def get_question_service(request: Request) -> QuestionService:
    analytics = get_analytics(request)
    return QuestionService(
        analytics=analytics,
        quota_service=QuotaService(analytics=analytics),
        generator=get_answer_generator(request),
    )


def get_revision_service(request: Request) -> RevisionService:
    return RevisionService(analytics=get_analytics(request))
