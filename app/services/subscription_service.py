import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.cache import get_cached_plans, invalidate_cached_plans, set_cached_plans
from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.models.plan import Plan
from app.models.subscription import Subscription, SubscriptionStatus
from app.models.user import User
from app.services.analytics_service import AnalyticsService

logger = logging.getLogger(__name__)

FREEMIUM_PLAN = 'freemium'

DEFAULT_PLANS = [
    {
        'name': 'freemium',
        'price': 0.00,
        'daily_questions_limit': 20,
        'can_generate_quizzes': False,
        'can_export_files': False,
        'has_advanced_stats': False,
        'features': {
            'description': 'Free plan with daily limits',
            'maxQuestions': 20,
            'support': 'Community',
        },
    },
    {
        'name': 'standard',
        'price': 9.99,
        'daily_questions_limit': 100,
        'can_generate_quizzes': True,
        'can_export_files': True,
        'has_advanced_stats': False,
        'features': {
            'description': 'Standard plan for students',
            'maxQuestions': 100,
            'support': 'Email',
            'exportFormats': ['PDF', 'TXT'],
        },
    },
    {
        'name': 'premium',
        'price': 19.99,
        'daily_questions_limit': 300,
        'can_generate_quizzes': True,
        'can_export_files': True,
        'has_advanced_stats': True,
        'features': {
            'description': 'Premium plan with advanced statistics',
            'maxQuestions': 300,
            'support': 'Priority',
            'exportFormats': ['PDF', 'WORD', 'TXT'],
            'analytics': True,
        },
    },
    {
        'name': 'pro',
        'price': 39.99,
        'daily_questions_limit': 1000,
        'can_generate_quizzes': True,
        'can_export_files': True,
        'has_advanced_stats': True,
        'features': {
            'description': 'Professional plan for schools and training centres',
            'maxQuestions': 1000,
            'support': '24/7',
            'exportFormats': ['PDF', 'WORD', 'TXT'],
            'analytics': True,
            'multipleUsers': True,
        },
    },
]


def serialize_plan(plan: Plan) -> dict:
    return {
        'id': plan.id,
        'name': plan.name,
        'price': float(plan.price),
        'dailyQuestionsLimit': plan.daily_questions_limit,
        'canGenerateQuizzes': plan.can_generate_quizzes,
        'canExportFiles': plan.can_export_files,
        'hasAdvancedStats': plan.has_advanced_stats,
        'features': plan.features or {},
        'active': plan.active,
    }


def serialize_subscription(subscription: Subscription) -> dict:
    plan = subscription.plan
    return {
        'id': subscription.id,
        'planName': plan.name,
        'status': subscription.status.value,
        'startDate': subscription.start_date.isoformat() if subscription.start_date else None,
        'endDate': subscription.end_date.isoformat() if subscription.end_date else None,
        'autoRenew': subscription.auto_renew,
        'features': {
            'dailyQuestionsLimit': plan.daily_questions_limit,
            'canGenerateQuizzes': plan.can_generate_quizzes,
            'canExportFiles': plan.can_export_files,
            'hasAdvancedStats': plan.has_advanced_stats,
        },
    }


class PlanCatalog:
    """Subscription tiers stored in the ``plans`` table."""

    def __init__(self, analytics: Optional[AnalyticsService] = None):
        self.analytics = analytics or AnalyticsService()
        self.logger = logging.getLogger(__name__)

    def seed_plans(self, db: Session) -> int:
        """
        Create the default tiers that are missing, matched by name.

        Existing rows are never modified. Returns the number of plans created.
        """
        self.logger.info("seed_plans: Entry")

        try:
            existing = {name for (name,) in db.query(Plan.name).all()}
            created = 0
            for definition in DEFAULT_PLANS:
                if definition['name'] in existing:
                    continue
                db.add(Plan(id=str(uuid.uuid4()), active=True, **definition))
                created += 1

            if created:
                db.commit()
                invalidate_cached_plans()

            self.logger.info(f"seed_plans: Success - created: {created}")
            return created
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(action='seed_plans', error=str(e))
            self.logger.error(f"seed_plans: Failure - {e}")
            raise

    def list_plans(self, db: Session) -> list[dict]:
        """Get all active plans ordered by price"""
        self.logger.info("list_plans: Entry")

        try:
            cached = get_cached_plans()
            if cached is not None:
                self.logger.info(f"list_plans: Success (cached) - {len(cached)} plans")
                return cached

            if db.query(Plan).count() == 0:
                self.seed_plans(db)

            plans = [
                serialize_plan(plan)
                for plan in db.query(Plan).filter(Plan.active == True).order_by(Plan.price).all()
            ]
            set_cached_plans(plans)

            self.logger.info(f"list_plans: Success - {len(plans)} plans")
            return plans
        except Exception as e:
            self.analytics.log_failure(action='list_plans', error=str(e))
            self.logger.error(f"list_plans: Failure - {e}")
            raise

    def get_plan(self, db: Session, name_or_id: str) -> Plan:
        plan = db.query(Plan).filter(
            or_(Plan.name == name_or_id.lower(), Plan.id == name_or_id)
        ).first()
        if not plan:
            raise NotFoundError(f"Plan not found: {name_or_id}", code="PLAN_NOT_FOUND")
        return plan


class SubscriptionResolver:
    """Maps a user to the daily question limit of their current plan."""

    def __init__(self, default_limit: Optional[int] = None):
        self.default_limit = settings.default_daily_question_limit if default_limit is None else default_limit
        self.logger = logging.getLogger(__name__)

    def get_active_subscription(self, db: Session, user_id: str) -> Optional[Subscription]:
        return db.query(Subscription).filter(
            Subscription.user_id == user_id,
            Subscription.status == SubscriptionStatus.ACTIVE
        ).order_by(Subscription.created_at.desc()).first()

    def resolve_daily_limit(self, db: Session, user_id: str) -> int:
        subscription = self.get_active_subscription(db, user_id)
        if subscription is None or subscription.plan is None:
            self.logger.info(f"resolve_daily_limit: Default - user: {user_id}, limit: {self.default_limit}")
            return self.default_limit

        # A zero limit is a real tier, not a missing value
        limit = subscription.plan.daily_questions_limit
        self.logger.info(f"resolve_daily_limit: Success - user: {user_id}, plan: {subscription.plan.name}, limit: {limit}")
        return limit


class SubscriptionService:
    def __init__(
        self,
        analytics: Optional[AnalyticsService] = None,
        resolver: Optional[SubscriptionResolver] = None,
        catalog: Optional[PlanCatalog] = None,
    ):
        self.analytics = analytics or AnalyticsService()
        self.resolver = resolver or SubscriptionResolver()
        self.catalog = catalog or PlanCatalog(analytics=self.analytics)
        self.logger = logging.getLogger(__name__)

    def get_current_subscription(self, db: Session, user_id: str) -> dict:
        """Active subscription with plan features, or the implicit freemium view"""
        self.logger.info(f"get_current_subscription: Entry - user: {user_id}")

        try:
            subscription = self.resolver.get_active_subscription(db, user_id)
            if subscription:
                result = serialize_subscription(subscription)
                result['isDefault'] = False
            else:
                result = {
                    'id': None,
                    'planName': FREEMIUM_PLAN,
                    'status': SubscriptionStatus.ACTIVE.value,
                    'startDate': None,
                    'endDate': None,
                    'autoRenew': False,
                    'features': {
                        'dailyQuestionsLimit': self.resolver.default_limit,
                        'canGenerateQuizzes': False,
                        'canExportFiles': False,
                        'hasAdvancedStats': False,
                    },
                    'isDefault': True,
                }

            self.logger.info(f"get_current_subscription: Success - user: {user_id}, plan: {result['planName']}")
            return result
        except Exception as e:
            self.analytics.log_failure(
                action='get_current_subscription',
                error=str(e),
                user_id=user_id
            )
            self.logger.error(f"get_current_subscription: Failure - {e}")
            raise

    def grant_subscription(
        self,
        db: Session,
        user_id: str,
        plan_name: str,
        duration_days: Optional[int] = None,
        auto_renew: bool = True
    ) -> Subscription:
        """Provision a plan for a user, replacing any active subscription"""
        self.logger.info(f"grant_subscription: Entry - user: {user_id}, plan: {plan_name}, days: {duration_days}")

        try:
            user = db.query(User).filter(User.id == user_id).first()
            if not user:
                raise NotFoundError("User not found", code="USER_NOT_FOUND")
            plan = self.catalog.get_plan(db, plan_name)

            now = datetime.utcnow()
            previous = db.query(Subscription).filter(
                Subscription.user_id == user_id,
                Subscription.status == SubscriptionStatus.ACTIVE
            ).all()
            for sub in previous:
                sub.status = SubscriptionStatus.CANCELLED
                sub.updated_at = now

            subscription = Subscription(
                id=str(uuid.uuid4()),
                user_id=user_id,
                plan_id=plan.id,
                status=SubscriptionStatus.ACTIVE,
                start_date=now,
                end_date=now + timedelta(days=duration_days) if duration_days else None,
                auto_renew=auto_renew,
                created_at=now,
            )
            db.add(subscription)
            db.commit()
            db.refresh(subscription)

            self.analytics.log_success(
                action='grant_subscription',
                user_id=user_id,
                parameters={'plan': plan.name, 'replaced': len(previous)}
            )
            self.logger.info(f"grant_subscription: Success - user: {user_id}, subscription: {subscription.id}")
            return subscription
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(
                action='grant_subscription',
                error=str(e),
                user_id=user_id,
                parameters={'plan': plan_name}
            )
            self.logger.error(f"grant_subscription: Failure - {e}")
            raise

    def cancel_subscription(self, db: Session, user_id: str) -> Subscription:
        """Cancel user's active subscription"""
        self.logger.info(f"cancel_subscription: Entry - user: {user_id}")

        try:
            subscription = self.resolver.get_active_subscription(db, user_id)
            if not subscription:
                raise NotFoundError("No active subscription found", code="SUBSCRIPTION_NOT_FOUND")

            subscription.status = SubscriptionStatus.CANCELLED
            subscription.auto_renew = False
            subscription.updated_at = datetime.utcnow()
            db.commit()
            db.refresh(subscription)

            self.analytics.log_success(
                action='cancel_subscription',
                user_id=user_id,
                parameters={'subscription_id': subscription.id}
            )
            self.logger.info(f"cancel_subscription: Success - user: {user_id}, subscription: {subscription.id}")
            return subscription
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(
                action='cancel_subscription',
                error=str(e),
                user_id=user_id
            )
            self.logger.error(f"cancel_subscription: Failure - {e}")
            raise

    def set_auto_renew(self, db: Session, user_id: str, auto_renew: bool) -> Subscription:
        self.logger.info(f"set_auto_renew: Entry - user: {user_id}, auto_renew: {auto_renew}")

        try:
            subscription = self.resolver.get_active_subscription(db, user_id)
            if not subscription:
                raise NotFoundError("No active subscription found", code="SUBSCRIPTION_NOT_FOUND")

            subscription.auto_renew = auto_renew
            subscription.updated_at = datetime.utcnow()
            db.commit()
            db.refresh(subscription)

            self.logger.info(f"set_auto_renew: Success - user: {user_id}, subscription: {subscription.id}")
            return subscription
        except Exception as e:
            db.rollback()
            self.logger.error(f"set_auto_renew: Failure - {e}")
            raise

    def expire_subscriptions(self, db: Session, now: Optional[datetime] = None) -> int:
        """Mark active subscriptions past their end_date as expired"""
        self.logger.info("expire_subscriptions: Entry")

        try:
            now = now or datetime.utcnow()
            count = db.query(Subscription).filter(
                Subscription.status == SubscriptionStatus.ACTIVE,
                Subscription.end_date.isnot(None),
                Subscription.end_date < now
            ).update(
                {Subscription.status: SubscriptionStatus.EXPIRED, Subscription.updated_at: now},
                synchronize_session=False
            )
            db.commit()

            self.analytics.log_success(
                action='expire_subscriptions',
                parameters={'expired_count': count}
            )
            self.logger.info(f"expire_subscriptions: Success - expired: {count}")
            return count
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(
                action='expire_subscriptions',
                error=str(e)
            )
            self.logger.error(f"expire_subscriptions: Failure - {e}")
            raise
