from app.models.user import User, UserRole, AccountStatus
from app.models.plan import Plan
from app.models.subscription import Subscription, SubscriptionStatus
from app.models.quota import DailyQuota
from app.models.question import Question
from app.models.revision_sheet import RevisionSheet, ExportFormat

__all__ = ["User", "UserRole", "AccountStatus", "Plan", "Subscription", "SubscriptionStatus", "DailyQuota", "Question", "RevisionSheet", "ExportFormat"]
