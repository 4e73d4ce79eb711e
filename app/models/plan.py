from sqlalchemy import Column, String, Integer, DateTime, Boolean, Numeric, JSON
from app.core.database import Base
from datetime import datetime


class Plan(Base):
    __tablename__ = "plans"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False, index=True)  # 'freemium', 'standard', 'premium', 'pro'
    price = Column(Numeric(10, 2), nullable=False)
    daily_questions_limit = Column(Integer, nullable=False)
    can_generate_quizzes = Column(Boolean, default=False, nullable=False)
    can_export_files = Column(Boolean, default=False, nullable=False)
    has_advanced_stats = Column(Boolean, default=False, nullable=False)
    features = Column(JSON, nullable=False, default=dict)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
