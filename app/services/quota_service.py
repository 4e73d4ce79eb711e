from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from app.models.quota import DailyQuota
from app.models.user import User
from app.core.config import settings
from app.core.exceptions import AppError, InfrastructureError, NotFoundError, QuotaExceededError
from app.services.analytics_service import AnalyticsService
from app.services.subscription_service import SubscriptionResolver
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo
import uuid
import logging

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QuotaService:
    """
    Per-user daily question ledger.

    One ``daily_quotas`` row exists per (user, quota day). The day is the
    calendar date in the configured quota timezone; the row's limit is a
    snapshot of the user's plan limit taken when the row is created, so a
    plan change only applies from the next day.
    """

    def __init__(
        self,
        analytics: Optional[AnalyticsService] = None,
        resolver: Optional[SubscriptionResolver] = None,
        clock: Optional[Callable[[], datetime]] = None,
        timezone_name: Optional[str] = None,
    ):
        self.analytics = analytics or AnalyticsService()
        self.resolver = resolver or SubscriptionResolver()
        self.clock = clock or utc_now
        self.tz = ZoneInfo(timezone_name or settings.quota_timezone)
        self.logger = logging.getLogger(__name__)

    def today(self) -> date:
        return self.clock().astimezone(self.tz).date()

    def reset_at(self, quota_date: Optional[date] = None) -> str:
        """Start of the day after ``quota_date`` in the quota timezone (ISO-8601)."""
        quota_date = quota_date or self.today()
        return datetime.combine(quota_date + timedelta(days=1), time.min, tzinfo=self.tz).isoformat()

    def _find(self, db: Session, user_id: str, quota_date: date) -> Optional[DailyQuota]:
        return db.query(DailyQuota).filter(
            DailyQuota.user_id == user_id,
            DailyQuota.quota_date == quota_date
        ).first()

    def get_or_create_today(self, db: Session, user_id: str) -> DailyQuota:
        """
        Return today's quota row for the user, creating it on first use.

        Two concurrent first requests may both try to insert; the loser hits
        the (user_id, quota_date) unique constraint, rolls back and reads the
        winner's row.
        """
        self.logger.info(f"get_or_create_today: Entry - user: {user_id}")

        try:
            if not db.query(User.id).filter(User.id == user_id).first():
                raise NotFoundError("User not found", code="USER_NOT_FOUND")

            today = self.today()
            quota = self._find(db, user_id, today)
            if quota:
                self.logger.info(f"get_or_create_today: Success (existing) - user: {user_id}, used: {quota.questions_used}/{quota.questions_limit}")
                return quota

            limit = self.resolver.resolve_daily_limit(db, user_id)
            quota = DailyQuota(
                id=str(uuid.uuid4()),
                user_id=user_id,
                quota_date=today,
                questions_used=0,
                questions_limit=limit
            )
            db.add(quota)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                self.logger.info(f"get_or_create_today: Concurrent create - user: {user_id}, re-reading")
                quota = self._find(db, user_id, today)
                if quota is None:
                    raise InfrastructureError("Quota row could not be created")

            self.logger.info(f"get_or_create_today: Success - user: {user_id}, date: {today}, limit: {quota.questions_limit}")
            return quota
        except AppError as e:
            db.rollback()
            self.logger.info(f"get_or_create_today: Rejected - {e.code}")
            raise
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(
                action='get_or_create_today',
                error=str(e),
                user_id=user_id
            )
            self.logger.error(f"get_or_create_today: Failure - {e}")
            raise

    def check_and_reserve(self, db: Session, user_id: str) -> DailyQuota:
        """
        Ensure the user may ask another question today.

        Raises QuotaExceededError when the day's row is exhausted. Nothing is
        consumed here; ``increment`` records the question once it is saved.
        """
        self.logger.info(f"check_and_reserve: Entry - user: {user_id}")

        quota = self.get_or_create_today(db, user_id)
        if quota.questions_used >= quota.questions_limit:
            self.analytics.log_event(
                event_name='quota_exceeded',
                user_id=user_id,
                parameters={'limit': quota.questions_limit, 'date': quota.quota_date.isoformat()}
            )
            self.logger.info(f"check_and_reserve: Quota exceeded - user: {user_id}, used: {quota.questions_used}/{quota.questions_limit}")
            raise QuotaExceededError(quota.questions_limit)

        self.logger.info(f"check_and_reserve: Success - user: {user_id}, used: {quota.questions_used}/{quota.questions_limit}")
        return quota

    def increment(self, db: Session, user_id: str, quota_date: Optional[date] = None) -> bool:
        """
        Count one question against the day's row.

        Runs as a single conditional UPDATE so concurrent callers can never
        push ``questions_used`` past ``questions_limit``. Returns False when
        the row was already full.
        """
        quota_date = quota_date or self.today()
        self.logger.info(f"increment: Entry - user: {user_id}, date: {quota_date}")

        try:
            updated = db.query(DailyQuota).filter(
                DailyQuota.user_id == user_id,
                DailyQuota.quota_date == quota_date,
                DailyQuota.questions_used < DailyQuota.questions_limit
            ).update(
                {
                    DailyQuota.questions_used: DailyQuota.questions_used + 1,
                    DailyQuota.updated_at: datetime.utcnow(),
                },
                synchronize_session=False
            )
            db.commit()

            if updated:
                self.logger.info(f"increment: Success - user: {user_id}, date: {quota_date}")
                return True

            if self._find(db, user_id, quota_date) is None:
                raise InfrastructureError(f"No quota row for user {user_id} on {quota_date}")

            self.analytics.log_event(
                event_name='quota_increment_rejected',
                user_id=user_id,
                parameters={'date': quota_date.isoformat()}
            )
            self.logger.warning(f"increment: Limit reached concurrently - user: {user_id}, date: {quota_date}")
            return False
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(
                action='increment',
                error=str(e),
                user_id=user_id,
                parameters={'date': quota_date.isoformat()}
            )
            self.logger.error(f"increment: Failure - {e}")
            raise

    def status(self, db: Session, user_id: str) -> dict:
        """Today's usage; never creates a row."""
        self.logger.info(f"status: Entry - user: {user_id}")

        try:
            today = self.today()
            quota = self._find(db, user_id, today)
            if quota:
                used, limit = quota.questions_used, quota.questions_limit
            else:
                used, limit = 0, self.resolver.resolve_daily_limit(db, user_id)

            result = {
                'used': used,
                'limit': limit,
                'remaining': max(0, limit - used),
                'resetAt': self.reset_at(today),
            }
            self.logger.info(f"status: Success - user: {user_id}, used: {used}/{limit}")
            return result
        except Exception as e:
            self.analytics.log_failure(
                action='quota_status',
                error=str(e),
                user_id=user_id
            )
            self.logger.error(f"status: Failure - {e}")
            raise
