from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.orm import relationship
from app.core.database import Base
from datetime import datetime


class UserRole:
    STUDENT = "student"
    ADMIN = "admin"


class AccountStatus:
    ACTIVE = "active"
    INACTIVE = "inactive"
    BLOCKED = "blocked"
    PENDING = "pending"

    ALL = (ACTIVE, INACTIVE, BLOCKED, PENDING)


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)  # Firebase UID
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False, default="Student")
    role = Column(String, nullable=False, default=UserRole.STUDENT, index=True)
    account_status = Column(String, nullable=False, default=AccountStatus.ACTIVE, index=True)
    preferences = Column(JSON, nullable=False, default=dict)
    profile_image = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    subscriptions = relationship("Subscription", back_populates="user")
    questions = relationship("Question", back_populates="user", cascade="all, delete-orphan")
    revision_sheets = relationship("RevisionSheet", back_populates="user", cascade="all, delete-orphan")
