import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import AppError, ConflictError, NotFoundError, ValidationError
from app.models.question import Question
from app.models.quota import DailyQuota
from app.models.revision_sheet import RevisionSheet
from app.models.subscription import Subscription, SubscriptionStatus
from app.models.user import AccountStatus, User, UserRole
from app.services.analytics_service import AnalyticsService
from app.services.quota_service import QuotaService
from app.services.subscription_service import SubscriptionResolver, serialize_subscription

logger = logging.getLogger(__name__)


def serialize_user(user: User) -> dict:
    return {
        'id': user.id,
        'email': user.email,
        'name': user.name,
        'role': user.role,
        'accountStatus': user.account_status,
        'profileImage': user.profile_image,
        'preferences': user.preferences or {},
        'createdAt': user.created_at.isoformat() if user.created_at else None,
        'updatedAt': user.updated_at.isoformat() if user.updated_at else None,
    }


class UserService:
    def __init__(
        self,
        analytics: Optional[AnalyticsService] = None,
        resolver: Optional[SubscriptionResolver] = None,
        quota_service: Optional[QuotaService] = None,
    ):
        self.analytics = analytics or AnalyticsService()
        self.resolver = resolver or SubscriptionResolver()
        self.quota_service = quota_service or QuotaService(analytics=self.analytics, resolver=self.resolver)
        self.logger = logging.getLogger(__name__)

    def get_or_create_account(
        self,
        db: Session,
        user_id: str,
        email: Optional[str],
        name: Optional[str] = None,
        role: Optional[str] = None,
        email_verified: bool = False
    ) -> User:
        """
        Resolve the local account for a verified identity.

        Looks up by uid first. An account under another uid (for example one
        created by an admin) is only linked by email when Firebase has
        verified that email; an unverified email that is already taken raises
        ConflictError. Otherwise a student account is created on first sign-in.
        """
        user = db.query(User).filter(User.id == user_id).first()
        if user:
            return user

        if email:
            user = self._claim_by_email(db, user_id, email, email_verified)
            if user:
                return user

        self.logger.info(f"get_or_create_account: Creating - user: {user_id}")
        user = User(
            id=user_id,
            email=email or f"{user_id}@users.noreply",
            name=name or 'Student',
            role=role if role in (UserRole.STUDENT, UserRole.ADMIN) else UserRole.STUDENT,
            account_status=AccountStatus.ACTIVE,
            preferences={},
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Created by a concurrent first request
            db.rollback()
            user = db.query(User).filter(User.id == user_id).first()
            if user:
                return user
            if email:
                user = self._claim_by_email(db, user_id, email, email_verified)
                if user:
                    return user
            raise

        db.refresh(user)
        self.analytics.log_event(event_name='user_created', user_id=user_id)
        return user

    def _claim_by_email(self, db: Session, user_id: str, email: str, email_verified: bool) -> Optional[User]:
        owner = db.query(User).filter(User.email == email).first()
        if not owner:
            return None

        if not email_verified:
            self.logger.warning(f"get_or_create_account: Unverified email already in use - uid: {user_id}, account: {owner.id}")
            self.analytics.log_event(
                event_name='account_link_rejected',
                user_id=user_id,
                parameters={'account_id': owner.id}
            )
            raise ConflictError("Email is already linked to another account", code="EMAIL_IN_USE")

        self.logger.info(f"get_or_create_account: Linked by verified email - uid: {user_id}, account: {owner.id}")
        return owner

    def get_profile(self, db: Session, user_id: str) -> dict:
        """Profile with active subscription, today's quota and usage counters"""
        self.logger.info(f"get_profile: Entry - user: {user_id}")

        try:
            user = db.query(User).filter(User.id == user_id).first()
            if not user:
                raise NotFoundError("User not found", code="USER_NOT_FOUND")

            subscription = self.resolver.get_active_subscription(db, user_id)
            profile = serialize_user(user)
            profile['subscription'] = serialize_subscription(subscription) if subscription else None
            profile['quota'] = self.quota_service.status(db, user_id)
            profile['stats'] = {
                'totalQuestions': db.query(func.count(Question.id)).filter(Question.user_id == user_id).scalar(),
                'totalRevisionSheets': db.query(func.count(RevisionSheet.id)).filter(RevisionSheet.user_id == user_id).scalar(),
            }

            self.logger.info(f"get_profile: Success - user: {user_id}")
            return profile
        except AppError:
            raise
        except Exception as e:
            self.analytics.log_failure(
                action='get_profile',
                error=str(e),
                user_id=user_id
            )
            self.logger.error(f"get_profile: Failure - {e}")
            raise

    def update_profile(
        self,
        db: Session,
        user_id: str,
        name: Optional[str] = None,
        profile_image: Optional[str] = None,
        preferences: Optional[dict] = None
    ) -> User:
        self.logger.info(f"update_profile: Entry - user: {user_id}")

        try:
            user = db.query(User).filter(User.id == user_id).first()
            if not user:
                raise NotFoundError("User not found", code="USER_NOT_FOUND")

            if name:
                user.name = name
            if profile_image:
                user.profile_image = profile_image
            if preferences is not None:
                # Reassign so the JSON column is flagged dirty
                user.preferences = {**(user.preferences or {}), **preferences}
            user.updated_at = datetime.utcnow()
            db.commit()
            db.refresh(user)

            self.logger.info(f"update_profile: Success - user: {user_id}")
            return user
        except Exception as e:
            db.rollback()
            self.logger.error(f"update_profile: Failure - {e}")
            raise

    def list_users(
        self,
        db: Session,
        page: int = 1,
        limit: int = 20,
        role: Optional[str] = None,
        account_status: Optional[str] = None,
        search: Optional[str] = None
    ) -> dict:
        self.logger.info(f"list_users: Entry - page: {page}, limit: {limit}")

        query = db.query(User)
        if role:
            query = query.filter(User.role == role)
        if account_status:
            query = query.filter(User.account_status == account_status)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(or_(
                func.lower(User.name).like(pattern),
                func.lower(User.email).like(pattern),
            ))

        total = query.count()
        users = query.order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

        items = []
        for user in users:
            data = serialize_user(user)
            subscription = self.resolver.get_active_subscription(db, user.id)
            data['planName'] = subscription.plan.name if subscription else None
            data['questionCount'] = db.query(func.count(Question.id)).filter(Question.user_id == user.id).scalar()
            items.append(data)

        self.logger.info(f"list_users: Success - total: {total}")
        return {
            'users': items,
            'pagination': {
                'page': page,
                'limit': limit,
                'total': total,
                'pages': math.ceil(total / limit) if limit else 0,
            },
        }

    def update_status(self, db: Session, user_id: str, account_status: str) -> User:
        self.logger.info(f"update_status: Entry - user: {user_id}, status: {account_status}")

        try:
            if account_status not in AccountStatus.ALL:
                raise ValidationError(f"Invalid account status: {account_status}", code="INVALID_STATUS")

            user = db.query(User).filter(User.id == user_id).first()
            if not user:
                raise NotFoundError("User not found", code="USER_NOT_FOUND")

            user.account_status = account_status
            user.updated_at = datetime.utcnow()
            db.commit()
            db.refresh(user)

            self.analytics.log_success(
                action='update_account_status',
                user_id=user_id,
                parameters={'status': account_status}
            )
            self.logger.info(f"update_status: Success - user: {user_id}")
            return user
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(
                action='update_account_status',
                error=str(e),
                user_id=user_id
            )
            self.logger.error(f"update_status: Failure - {e}")
            raise

    def create_user(
        self,
        db: Session,
        email: str,
        name: str,
        role: str = UserRole.STUDENT,
        preferences: Optional[dict] = None
    ) -> User:
        """
        Admin-created account, active straight away.

        It gets a generated id; the person's first sign-in with a verified
        email links their Firebase uid to it.
        """
        self.logger.info(f"create_user: Entry - email: {email}, role: {role}")

        try:
            if role not in (UserRole.STUDENT, UserRole.ADMIN):
                raise ValidationError(f"Invalid role: {role}", code="INVALID_ROLE")
            if db.query(User.id).filter(User.email == email).first():
                raise ConflictError("Email is already linked to another account", code="EMAIL_IN_USE")

            user = User(
                id=str(uuid.uuid4()),
                email=email,
                name=name,
                role=role,
                account_status=AccountStatus.ACTIVE,
                preferences=preferences or {},
            )
            db.add(user)
            db.commit()
            db.refresh(user)

            self.analytics.log_success(action='create_user', user_id=user.id, parameters={'role': role})
            self.logger.info(f"create_user: Success - user: {user.id}")
            return user
        except AppError:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(action='create_user', error=str(e))
            self.logger.error(f"create_user: Failure - {e}")
            raise

    def update_user(
        self,
        db: Session,
        user_id: str,
        name: Optional[str] = None,
        role: Optional[str] = None,
        account_status: Optional[str] = None,
        preferences: Optional[dict] = None
    ) -> User:
        """Admin edit; preferences are replaced, not merged."""
        self.logger.info(f"update_user: Entry - user: {user_id}")

        try:
            if role is not None and role not in (UserRole.STUDENT, UserRole.ADMIN):
                raise ValidationError(f"Invalid role: {role}", code="INVALID_ROLE")
            if account_status is not None and account_status not in AccountStatus.ALL:
                raise ValidationError(f"Invalid account status: {account_status}", code="INVALID_STATUS")

            user = db.query(User).filter(User.id == user_id).first()
            if not user:
                raise NotFoundError("User not found", code="USER_NOT_FOUND")

            if name:
                user.name = name
            if role is not None:
                user.role = role
            if account_status is not None:
                user.account_status = account_status
            if preferences is not None:
                user.preferences = dict(preferences)
            user.updated_at = datetime.utcnow()
            db.commit()
            db.refresh(user)

            self.analytics.log_success(action='update_user', user_id=user_id)
            self.logger.info(f"update_user: Success - user: {user_id}")
            return user
        except AppError:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(action='update_user', error=str(e), user_id=user_id)
            self.logger.error(f"update_user: Failure - {e}")
            raise

    def delete_user(self, db: Session, user_id: str, now: Optional[datetime] = None) -> User:
        """
        Soft delete: the account becomes inactive and its email is replaced
        with ``deleted_<ms timestamp>_<id>@deleted.local`` so it can be reused.
        Questions and revision sheets are kept.
        """
        self.logger.info(f"delete_user: Entry - user: {user_id}")

        try:
            user = db.query(User).filter(User.id == user_id).first()
            if not user:
                raise NotFoundError("User not found", code="USER_NOT_FOUND")

            now = now or datetime.utcnow()
            user.account_status = AccountStatus.INACTIVE
            stamp = int(now.replace(tzinfo=timezone.utc).timestamp() * 1000)
            user.email = f"deleted_{stamp}_{user.id}@deleted.local"
            user.updated_at = now
            db.commit()
            db.refresh(user)

            self.analytics.log_success(action='delete_user', user_id=user_id)
            self.logger.info(f"delete_user: Success - user: {user_id}")
            return user
        except AppError:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            self.analytics.log_failure(action='delete_user', error=str(e), user_id=user_id)
            self.logger.error(f"delete_user: Failure - {e}")
            raise

    def platform_stats(self, db: Session, now: Optional[datetime] = None) -> dict:
        """Admin dashboard counters"""
        self.logger.info("platform_stats: Entry")

        now = now or datetime.utcnow()
        total_users = db.query(func.count(User.id)).scalar()
        active_users = db.query(func.count(User.id)).filter(User.account_status == AccountStatus.ACTIVE).scalar()
        today = self.quota_service.today()

        stats = {
            'totalUsers': total_users,
            'activeUsers': active_users,
            'inactiveUsers': total_users - active_users,
            'adminUsers': db.query(func.count(User.id)).filter(User.role == UserRole.ADMIN).scalar(),
            'blockedUsers': db.query(func.count(User.id)).filter(User.account_status == AccountStatus.BLOCKED).scalar(),
            'usersThisMonth': db.query(func.count(User.id)).filter(User.created_at >= now - timedelta(days=30)).scalar(),
            'activeSubscriptions': db.query(func.count(Subscription.id)).filter(
                Subscription.status == SubscriptionStatus.ACTIVE
            ).scalar(),
            'totalQuestions': db.query(func.count(Question.id)).scalar(),
            'questionsToday': db.query(func.coalesce(func.sum(DailyQuota.questions_used), 0)).filter(
                DailyQuota.quota_date == today
            ).scalar(),
        }
        self.logger.info(f"platform_stats: Success - users: {total_users}")
        return stats
