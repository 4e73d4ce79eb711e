from sqlalchemy import Column, String, Integer, DateTime, Boolean, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from app.core.database import Base
from datetime import datetime


class Question(Base):
    __tablename__ = "questions"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    subject = Column(String, nullable=False, index=True)
    grade_level = Column(String, nullable=False, index=True)
    question_text = Column(Text, nullable=False)
    ai_response = Column(Text, nullable=False)
    steps = Column(JSON, nullable=False, default=dict)  # {"steps": [...]}
    quiz = Column(JSON, nullable=False, default=dict)  # {"questions": [...]}
    question_type = Column(String, nullable=False, default="explanation")
    is_bookmarked = Column(Boolean, default=False, nullable=False)
    tags = Column(JSON, nullable=False, default=list)
    tokens_used = Column(Integer, nullable=True)
    response_time_ms = Column(Integer, nullable=True)
    used_fallback = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="questions")
