from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Date, UniqueConstraint
from sqlalchemy.orm import relationship
from app.core.database import Base
from datetime import datetime


class DailyQuota(Base):
    __tablename__ = "daily_quotas"
    __table_args__ = (
        UniqueConstraint("user_id", "quota_date", name="uq_daily_quotas_user_date"),
    )

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    quota_date = Column(Date, nullable=False, index=True)
    questions_used = Column(Integer, nullable=False, default=0)
    questions_limit = Column(Integer, nullable=False)  # plan limit snapshot at creation
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User")
